"""
alfred - module orchestration and firewall exposure control for a single host.
"""

__version__ = "1.0.0"
