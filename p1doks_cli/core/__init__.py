"""
Core application engine.

This package contains the car name resolver, which maps P1Doks car names to
iRacing setup folders, and the orchestrators built on it: the
`SetupDownloadManager`, which downloads and files data packs, and the
`MappingGenerator`, which writes the override mapping file.
"""
