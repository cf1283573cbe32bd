"""
ollamagate: token-scoped OpenAI-compatible gateway in front of Ollama.

Run with ``ollamagate`` or ``python -m ollamagate.main``.
"""

from __future__ import annotations

import uvicorn

from ollamagate.config.settings import settings
from ollamagate.core.gateway import app


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
