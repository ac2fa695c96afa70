"""
Constants and default values for the pagesmith bundler
"""

import os

# CDN and runtime pinning
CDN_URL = os.getenv("PAGESMITH_CDN_URL", "https://esm.sh").rstrip("/")
SVELTE_VERSION = os.getenv("PAGESMITH_SVELTE_VERSION", "5.16.0")
SVELTE_CDN = f"{CDN_URL}/svelte@{SVELTE_VERSION}"
SVELTE_IMPORT_MAP_URL = f"{CDN_URL}/svelte@5"

# Reserved module identifiers
RUNTIME_MODULE = "svelte"
ENV_MODULE = "esm-env"
CONTENT_MODULE = "$content"
DESIGN_MODULE = "$design"
DATA_MODULE = "$data"
SITE_MODULE = "$site"
BACKEND_MODULE = "$backend"
ICON_MODULE = "@iconify/svelte"

BINDING_MODULES = (CONTENT_MODULE, DESIGN_MODULE, DATA_MODULE, SITE_MODULE, BACKEND_MODULE)

VIRTUAL_PREFIX = "virtual:"
SSR_RUNTIME_SHIM = "svelte-ssr-shim"
ICON_SHIM_ID = "virtual:IconifyIcon.svelte"

# Synthesized local files
ENTRY_FILE = "./entry.js"
APP_FILE = "./App.svelte"
SECTION_FILE_TEMPLATE = "./Component_{index}.svelte"

# Build targets
TARGET_SSR = "ssr"
TARGET_DOM = "dom"
TARGET_HYDRATE = "hydrate"

CSS_MODES = {"external", "injected"}
OUTPUT_FORMATS = {"esm"}

# Environment variable defaults
DEFAULT_NODE_COMMAND = os.getenv("PAGESMITH_NODE_CMD", "node")
DEFAULT_NODE_TIMEOUT = int(os.getenv("PAGESMITH_NODE_TIMEOUT", "30"))
DEFAULT_FETCH_TIMEOUT = float(os.getenv("PAGESMITH_FETCH_TIMEOUT", "15"))
DEFAULT_HOST = os.getenv("PAGESMITH_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PAGESMITH_PORT", "5180"))
DEFAULT_BUILD_WORKERS = int(os.getenv("PAGESMITH_BUILD_WORKERS", "2"))

# Host API paths baked into generated client modules
DATA_API_BASE = "/_tk/data"
BACKEND_API_BASE = "/_tk/backend"
ASSET_BASE = "/_tk/assets"
PROXY_ENDPOINT = "/api/proxy"

# Static document
NORMALIZE_CSS_URL = "https://cdn.jsdelivr.net/npm/modern-normalize@2.0.0/modern-normalize.min.css"
FONTS_CDN_URL = "https://fonts.bunny.net/css"

# Logging format
LOG_FORMAT = "[pagesmith:bundler] %(levelname)s: %(message)s"
