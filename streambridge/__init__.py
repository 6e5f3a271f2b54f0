"""
streambridge - Streaming Protocol Translator

Consumes provider Server-Sent-Event streams (Anthropic Messages, OpenAI
Chat Completions) and re-emits one normalized, ordered event sequence to a
single consumer.
"""

__version__ = "0.1.0"
