"""Surface Boolean engine: split two triangulated surfaces against each other and merge the kept parts."""

__version__ = "1.0.0"
