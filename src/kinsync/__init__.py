"""
kinsync: incremental Planning Center People <-> Fibery sync.
"""

__version__ = "0.1.0"
