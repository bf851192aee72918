"""Run the sandbox API with uvicorn: ``python -m sandbox_api``."""

from __future__ import annotations

import uvicorn

from sandbox_api.app.settings import SandboxApiSettings


def main() -> None:
    settings = SandboxApiSettings.from_env()
    uvicorn.run(
        "sandbox_api.app.main:create_app_from_env",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
