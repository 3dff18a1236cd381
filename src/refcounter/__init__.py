"""Reference Counter - effective reference counts and unused symbol detection."""

try:
    from importlib.metadata import version

    __version__ = version("refcounter")
except Exception:
    __version__ = "0.0.0.dev0+local"  # Fallback for development
