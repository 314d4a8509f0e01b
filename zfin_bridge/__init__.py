"""ZFIN Bridge: two-way file relay between the Bank and ZFIN exchange folders.

Polls each side's outgoing folder for settled files, delivers them to the
other side's incoming folder with the extension that side expects, and
keeps the processed originals in dated archive folders.
"""

__version__ = "1.0.0"
__app_name__ = "ZFIN Bridge"
