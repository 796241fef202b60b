"""leanpb - reflection-free Protocol Buffers code generator for Python."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("leanpb")
except PackageNotFoundError:
    __version__ = "(local)"
