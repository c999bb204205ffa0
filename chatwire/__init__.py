"""chatwire -- one chat interface over OpenAI-compatible and Gemini endpoints."""

__version__ = "0.1.0"
