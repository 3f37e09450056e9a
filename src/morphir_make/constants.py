"""Constants for morphir-make."""

# Project files (inside the project directory)
MANIFEST_FILE = "morphir.json"
HASHES_FILE = "morphir-hashes.json"
IR_FILE = "morphir-ir.json"

# Tool configuration (optional, inside the project directory)
CONFIG_FILE = "morphir-make.yaml"

# Environment override for the engine launch command
ENGINE_ENV_VAR = "MORPHIR_MAKE_ENGINE"

# Default bound for concurrent file operations
DEFAULT_MAX_CONCURRENT = 32

# Redistributable layout (relative to the configured redistributable dir)
REDISTRIBUTABLE_COMMON = "Scala/sdk/src"
REDISTRIBUTABLE_VERSIONED = "Scala/sdk/src-{version}"
DEFAULT_TARGET_VERSION = "2.11"

# Version
MAKE_VERSION = "0.1.0"
