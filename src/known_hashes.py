"""
SHA-256 digests of released apollo-spc-program builds, per platform.

Extra digests (local builds) go in additional_hashes.txt beside the launcher.
"""
from platform_tag import Platform

KNOWN_HASHES = {
    Platform.WINDOWS: (
        "e8f1e9f0eb11b571336d6a16d7585e91c90bced734d47122810ac173589d20ff",  # v0.1.0 (x86-64)
    ),
    Platform.LINUX: (
        "5733859762265cfb29f9314f7df747027f12e6913f7dd44800f64ab3c3ce39fe",  # v0.1.0 (x86-64)
    ),
}
