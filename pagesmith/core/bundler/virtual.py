"""
Virtual module sources

Modules with no backing file. Their text is generated from the build's
bindings: content fields, design tokens, record snapshots and the host
utilities. The server build inlines them; in the browser an import map
supplies the client variants.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import (
    SVELTE_CDN, DATA_API_BASE, BACKEND_API_BASE, ASSET_BASE, PROXY_ENDPOINT,
    CONTENT_MODULE, DESIGN_MODULE, DATA_MODULE, SITE_MODULE, BACKEND_MODULE
)
from .utils import to_js_literal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collection:
    """Snapshot of one record collection"""
    records: List[Dict[str, Any]] = field(default_factory=list)
    schema: Optional[Any] = None

    @classmethod
    def from_value(cls, value: Any) -> "Collection":
        if isinstance(value, Collection):
            return value
        if isinstance(value, list):
            return cls(records=list(value))
        if isinstance(value, dict):
            return cls(records=list(value.get("records") or []), schema=value.get("schema"))
        raise TypeError(f"Cannot build a collection from {type(value).__name__}")


EMPTY_COLLECTION = Collection()


@dataclass(frozen=True)
class VirtualBindings:
    """Runtime values behind $content, $design, $data, $site and $backend"""
    content: Dict[str, Any] = field(default_factory=dict)
    design: Dict[str, Any] = field(default_factory=dict)
    data: Dict[str, Collection] = field(default_factory=dict)
    project_id: str = ""

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "VirtualBindings":
        raw = raw or {}
        data = {name: Collection.from_value(value) for name, value in (raw.get("data") or {}).items()}
        return cls(
            content=dict(raw.get("content") or {}),
            design=dict(raw.get("design") or {}),
            data=data,
            project_id=str(raw.get("project_id") or raw.get("projectId") or ""),
        )

    def collection(self, name: str) -> Collection:
        """Look up a collection; unknown names get an empty one"""
        return self.data.get(name, EMPTY_COLLECTION)

    def collection_names(self) -> List[str]:
        return list(self.data)


def env_module(ssr: bool, dev: bool = False) -> str:
    browser = "false" if ssr else "true"
    return (
        f"export const DEV = {'true' if dev else 'false'}; "
        f"export const PROD = {'false' if dev else 'true'}; "
        f"export const BROWSER = {browser};"
    )


def value_module(value: Dict[str, Any]) -> str:
    """Module for $content and $design: a single default-exported object"""
    return f"export default {to_js_literal(value)};"


def ssr_data_module(bindings: VirtualBindings) -> str:
    """
    $data during server render

    Collections are read-only views over the record snapshot. Unknown
    collection names return an empty stub so templates still render.
    """
    snapshot = {name: bindings.collection(name).records for name in bindings.collection_names()}
    return f"""
const _snapshot = {to_js_literal(snapshot)};

function read_only(name) {{
  return () => Promise.reject(new Error('Collection "' + name + '" is read-only during server render'))
}}

function create_collection(name, records) {{
  return {{
    list() {{ return Promise.resolve(records.slice()) }},
    get(id) {{ return Promise.resolve(records.find((r) => r.id === id) ?? null) }},
    create: read_only(name),
    update: read_only(name),
    delete: read_only(name),
    subscribe(callback) {{
      if (typeof callback === 'function') callback(records.slice())
      return () => {{}}
    }}
  }}
}}

const _collections = {{}}
for (const [name, records] of Object.entries(_snapshot)) {{
  _collections[name] = create_collection(name, records)
}}

export default new Proxy(_collections, {{
  get(target, prop) {{
    if (prop in target) return target[prop]
    if (typeof prop === 'string' && !prop.startsWith('_')) return create_collection(prop, [])
    return undefined
  }}
}})
""".strip()


def client_data_module(project_id: str, collections: List[str]) -> str:
    """$data in the browser: collections backed by the host data API"""
    return f"""
const PROJECT_ID = {to_js_literal(project_id)}
const API_BASE = '{DATA_API_BASE}'
const _collections = {{}}

function create_collection(name) {{
  const base_url = API_BASE + '/' + PROJECT_ID + '/' + name
  const subscribers = []
  let cache = null

  function notify(records) {{
    cache = records
    for (const cb of subscribers) {{
      try {{ cb(records) }} catch (e) {{ console.error('[db] subscriber error:', e) }}
    }}
  }}

  async function request(url, options) {{
    const res = await fetch(url, options)
    if (!res.ok) throw new Error(await res.text())
    return res.status === 204 ? null : res.json()
  }}

  const collection = {{
    _notify: notify,
    async list(params = {{}}) {{
      const query = new URLSearchParams()
      for (const key of ['filter', 'sort', 'page', 'perPage', 'expand']) {{
        if (params[key]) query.set(key, String(params[key]))
      }}
      const data = await request(base_url + '?' + query)
      cache = data.items || []
      return cache
    }},
    get(id) {{ return request(base_url + '/' + id) }},
    async create(data) {{
      const record = await request(base_url, {{
        method: 'POST', headers: {{ 'Content-Type': 'application/json' }}, body: JSON.stringify(data)
      }})
      if (cache && !cache.some((r) => r.id === record.id)) notify([...cache, record])
      return record
    }},
    async update(id, data) {{
      const record = await request(base_url + '/' + id, {{
        method: 'PATCH', headers: {{ 'Content-Type': 'application/json' }}, body: JSON.stringify(data)
      }})
      if (cache) notify(cache.map((r) => (r.id === id ? record : r)))
      return record
    }},
    async delete(id) {{
      await request(base_url + '/' + id, {{ method: 'DELETE' }})
      if (cache) notify(cache.filter((r) => r.id !== id))
      return true
    }},
    subscribe(callback, params = {{}}) {{
      if (typeof callback !== 'function') return () => {{}}
      subscribers.push(callback)
      collection.list(params).then((items) => callback(items)).catch((e) => console.error('[db] initial fetch error:', e))
      return () => {{
        const idx = subscribers.indexOf(callback)
        if (idx > -1) subscribers.splice(idx, 1)
      }}
    }}
  }}
  _collections[name] = collection
  return collection
}}

for (const name of {to_js_literal(list(collections))}) create_collection(name)

if (typeof window !== 'undefined') {{
  window.__tk_update_data = (all_data) => {{
    for (const [name, collection] of Object.entries(_collections)) {{
      const entry = all_data[name]
      if (entry) collection._notify(entry.records || entry || [])
    }}
  }}
  if (window.parent === window && typeof EventSource !== 'undefined') {{
    const sse = new EventSource('/_tk/realtime/' + PROJECT_ID)
    sse.addEventListener('data_updated', (e) => {{
      try {{ window.__tk_update_data(JSON.parse(e.data)) }} catch (err) {{ console.warn('[db] bad realtime payload', err) }}
    }})
  }}
}}

export default new Proxy(_collections, {{
  get(target, prop) {{
    if (prop in target) return target[prop]
    if (typeof prop === 'string' && !prop.startsWith('_')) return create_collection(prop)
    return undefined
  }}
}})
""".strip()


def site_module(project_id: str) -> str:
    """$site: asset URLs and the CORS proxy helpers"""
    return f"""
const PROJECT_ID = {to_js_literal(project_id)}

export function asset(filename, options) {{
  if (!filename) return ''
  if (filename.startsWith('http://') || filename.startsWith('https://')) return filename
  let url = PROJECT_ID ? '{ASSET_BASE}/' + PROJECT_ID + '/' + filename : '{ASSET_BASE}/' + filename
  const params = []
  if (options?.thumb) params.push('thumb=' + options.thumb)
  if (options?.download) params.push('download=1')
  if (params.length) url += '?' + params.join('&')
  return url
}}

export async function proxy(url, options = {{}}) {{
  return fetch('{PROXY_ENDPOINT}?url=' + encodeURIComponent(url), options)
}}

proxy.json = async function (url) {{
  const response = await proxy(url)
  if (!response.ok) throw new Error('Failed to fetch: ' + response.status)
  return response.json()
}}

proxy.text = async function (url) {{
  const response = await proxy(url)
  if (!response.ok) throw new Error('Failed to fetch: ' + response.status)
  return response.text()
}}

proxy.url = function (url) {{
  return '{PROXY_ENDPOINT}?url=' + encodeURIComponent(url)
}}
""".strip()


def ssr_backend_module() -> str:
    """$backend during server render: every call resolves to null"""
    return """
const call = () => Promise.resolve(null)
export default new Proxy({}, {
  get(target, prop) {
    if (typeof prop !== 'string' || prop.startsWith('_') || prop === 'then') return undefined
    return call
  }
})
""".strip()


def client_backend_module(project_id: str) -> str:
    """$backend in the browser: POSTs to the project's backend functions"""
    return f"""
const PROJECT_ID = {to_js_literal(project_id)}
export default new Proxy({{}}, {{
  get(target, prop) {{
    if (typeof prop !== 'string' || prop.startsWith('_') || prop === 'then') return undefined
    return async (args = {{}}) => {{
      const res = await fetch('{BACKEND_API_BASE}/' + PROJECT_ID + '/' + prop, {{
        method: 'POST',
        headers: {{ 'Content-Type': 'application/json' }},
        body: JSON.stringify({{ args }})
      }})
      const payload = await res.json()
      if (!res.ok || payload.error) throw new Error(payload.error || ('Backend call failed: ' + res.status))
      return payload.result
    }}
  }}
}})
""".strip()


def ssr_runtime_shim(runtime_url: str = SVELTE_CDN) -> str:
    """
    Stand-in for the runtime during server render

    Everything is re-exported from the real runtime. Lifecycle hooks
    become no-ops and tick() resolves at once. Local exports take precedence
    over the star re-export.
    """
    return f"""
export * from {to_js_literal(runtime_url)};
export function onMount() {{}}
export function onDestroy() {{}}
export function beforeUpdate() {{}}
export function afterUpdate() {{}}
export function tick() {{ return Promise.resolve(); }}
""".strip()


ICON_SHIM_SOURCE = """
<script>
  let { icon, width = '1em', height = '1em', ...rest } = $props();
</script>

<svelte:head>
  {@html '<script type="module" src="https://cdn.jsdelivr.net/npm/iconify-icon@2/dist/iconify-icon.min.js"></scr' + 'ipt>'}
</svelte:head>

<iconify-icon {icon} {width} {height} {...rest}></iconify-icon>
""".strip()


def binding_module(name: str, bindings: VirtualBindings) -> Optional[str]:
    """Server-render source for one of the reserved binding modules"""
    if name == CONTENT_MODULE:
        return value_module(bindings.content)
    if name == DESIGN_MODULE:
        return value_module(bindings.design)
    if name == DATA_MODULE:
        return ssr_data_module(bindings)
    if name == SITE_MODULE:
        return site_module(bindings.project_id)
    if name == BACKEND_MODULE:
        return ssr_backend_module()
    return None


def client_binding_modules(bindings: VirtualBindings) -> Dict[str, str]:
    """Browser sources for every binding module, keyed by module name"""
    return {
        CONTENT_MODULE: value_module(bindings.content),
        DESIGN_MODULE: value_module(bindings.design),
        DATA_MODULE: client_data_module(bindings.project_id, bindings.collection_names()),
        SITE_MODULE: site_module(bindings.project_id),
        BACKEND_MODULE: client_backend_module(bindings.project_id),
    }
