from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("unitdash")
except PackageNotFoundError:
    # source checkout that was never installed
    __version__ = "0.0.0+dev"
