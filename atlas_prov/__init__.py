"""MongoDB Atlas resource provisioner.

Drives Atlas clusters, stream processors, AWS private endpoints and
cloud-backup export jobs through their asynchronous lifecycles, one
stateless step per invocation.
"""

try:
    from importlib.metadata import version

    __version__ = version("mongodb-atlas-provisioner")
except Exception:
    __version__ = "0.0.0.dev0"

__all__ = ["__version__"]
