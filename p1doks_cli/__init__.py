"""
p1doks-cli: download P1Doks setups into the iRacing setups folder.
"""

__version__ = "1.0.0"
