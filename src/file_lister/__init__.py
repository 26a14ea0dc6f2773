"""Create LLM friendly text from the plaintext files of a directory."""

__version__ = "0.1.0"
