"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build cooking-instruction prompts from recipe data.
- Call the Groq chat completion API and extract the generated text.
- Translate API failures into categorized, human-readable errors.
- Fall back to a deterministic placeholder when no credential is configured.
"""
