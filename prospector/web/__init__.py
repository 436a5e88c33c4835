"""HTTP API for Prospector."""


def __getattr__(name: str):
    # Avoid importing FastAPI at package import time.
    if name == "create_app":
        from prospector.web.app import create_app

        globals()["create_app"] = create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["create_app"]
