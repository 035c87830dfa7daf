"""
Example configuration for thunder-kernels-api.

Any traitlets config file loaded by the host works; this shows the knobs
the Thunder Compute provider exposes.

Usage:
    jupyter server --config=jupyter_config.py
"""

c = get_config()  # noqa

# ============================================================================
# Control API
# ============================================================================
# Defaults to http://localhost:8080, or https://api.thundercompute.com:8443
# when THUNDER_ENV=production. THUNDER_API_ENDPOINT overrides both.
# c.ThunderGatewayClient.api_endpoint = "https://api.thundercompute.com:8443"

# Seconds to wait for an instance to come up before giving up
c.ThunderGatewayClient.request_timeout = 300

# ============================================================================
# Credentials
# ============================================================================
# The token is read from this file, and written to it after prompting.
# THUNDER_TOKEN is consulted before the interactive prompt.
# c.CredentialStore.token_file = "~/.thunder/token"

# ============================================================================
# Server provider
# ============================================================================
# Grace period after a session starts before the kernel server is used
c.ThunderServerProvider.startup_delay = 6

# Kernel websocket tuning handed to the kernel connection framework
# c.ThunderServerProvider.disable_websocket_compression = True
# c.ThunderServerProvider.websocket_timeout = 180

# ============================================================================
# Server collections
# ============================================================================
# Extra collections are discovered from the 'thunder_server_collections'
# entry point group, e.g. in pyproject.toml:
#
# [project.entry-points.thunder_server_collections]
# "acme-h100" = "acme_thunder.collections:H100_COLLECTION"
#
# Collection listed when none is selected
# c.ServerCollectionRegistry.default_collection = "thunder-compute-t4"

# ============================================================================
# Preferred remote kernels
# ============================================================================
# c.PreferredRemoteKernelIdStore.storage_file = "/path/to/preferred_kernels.json"

# Optional: Enable debug logging to see request/response details
# c.Application.log_level = "DEBUG"
