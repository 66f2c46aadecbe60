"""In-process page model: document tree and request-issuing runtime."""
