from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("grc-risk-dashboard")
except PackageNotFoundError:
    __version__ = "0.1.0"
