"""
Run batch workloads as Kubernetes Jobs and follow them to completion.
"""

__version__ = "0.1.0"
