"""
wizgate - verified acquisition and guarded execution of the Wiz CLI.

wizgate provides:
- Download of the Wiz CLI binary and its published checksum/signature files
- OpenPGP verification of the checksum against an embedded release key
- SHA-256 verification of the binary against the signed checksum
- Allow-list validation of CLI invocations per CLI version
"""

__version__ = "0.3.1"
