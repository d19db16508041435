"""Keep Rancher cluster tokens in a kubeconfig file fresh."""

from ._version import __version__


__all__ = ["__version__"]
