"""wizgate security primitives: checksums and OpenPGP verification."""
