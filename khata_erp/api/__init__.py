from .handlers import Registry, build_registry, fail, ok

__all__ = ["Registry", "build_registry", "ok", "fail"]
