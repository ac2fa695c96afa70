"""
Source assembly for the in-memory build graph

Produces the files a build starts from: one component file per section,
the app shell that composes them and the entry module.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .constants import APP_FILE, ENTRY_FILE, RUNTIME_MODULE, SECTION_FILE_TEMPLATE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComponentSource:
    """One section as separate markup, style, script and prop values"""
    html: str = ""
    css: str = ""
    js: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    wrapper_start: str = ""
    wrapper_end: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ComponentSource":
        return cls(
            html=raw.get("html") or "",
            css=raw.get("css") or "",
            js=raw.get("js") or "",
            data=dict(raw.get("data") or {}),
            wrapper_start=raw.get("wrapper_start") or "",
            wrapper_end=raw.get("wrapper_end") or "",
        )


@dataclass(frozen=True)
class HeadSpec:
    """Markup for the document head plus the fields it binds"""
    code: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "HeadSpec":
        raw = raw or {}
        return cls(code=raw.get("code") or "", data=dict(raw.get("data") or {}))


Source = Union[str, ComponentSource]


def section_file(index: int) -> str:
    return SECTION_FILE_TEMPLATE.format(index=index)


def assemble_component(source: Source) -> str:
    """
    Turn one source into a complete component file

    Raw text and markup that already carries its own ``<script>`` are used
    verbatim. Otherwise the markup comes first, followed by a script that
    takes the data keys as props, then the style block.
    """
    if isinstance(source, str):
        return source

    if source.html and "<script" in source.html:
        return source.html

    keys = [key for key in source.data if key]
    script_lines = []
    if keys:
        script_lines.append(f"let {{ {', '.join(keys)} }} = $props();")
    if source.js:
        script_lines.append(source.js)

    parts = [source.html, "<script>\n" + "\n".join(script_lines) + "\n</script>"]
    if source.css:
        parts.append(f"<style>{source.css}</style>")
    return "\n".join(parts)


def app_shell(sections: Sequence[Source], head: Optional[HeadSpec] = None) -> str:
    """
    Top-level component composing the sections in order

    Each section receives ``component_<i>_props``; every field of the head
    data becomes a local read from ``head_props``.
    """
    head = head or HeadSpec()
    head_fields = [key for key in head.data if key]

    imports = [f"import Component_{i} from '{section_file(i)}';" for i in range(len(sections))]
    section_props = [f"let {{ component_{i}_props }} = props;" for i in range(len(sections))]
    field_lines = [f"let {key} = head_props['{key}'];" for key in head_fields]

    markup = []
    for i, section in enumerate(sections):
        start = section.wrapper_start if isinstance(section, ComponentSource) else ""
        end = section.wrapper_end if isinstance(section, ComponentSource) else ""
        markup.append(f"{start}<Component_{i} {{...component_{i}_props}} />{end}")

    script = "\n".join([
        "let props = $props();",
        *imports,
        *section_props,
        "let { head_props } = props;",
        *field_lines,
    ])
    return (
        f"<svelte:head>\n{head.code}\n</svelte:head>\n"
        f"<script>\n{script}\n</script>\n"
        + "\n".join(markup)
    )


def entrypoint(runtime_exports: Sequence[str] = ()) -> str:
    """Entry module re-exporting the app plus any requested runtime exports"""
    code = f"export {{ default }} from '{APP_FILE}';\n"
    if runtime_exports:
        code += f"export {{ {', '.join(runtime_exports)} }} from '{RUNTIME_MODULE}';\n"
    return code


def build_local_files(sources: Union[Source, List[Source]], head: Optional[HeadSpec] = None,
                      runtime_exports: Sequence[str] = ()) -> Dict[str, str]:
    """
    Synthesize the local file table for one build

    A list of sources becomes one file per section plus an app shell; a
    single source becomes the app file directly.
    """
    files: Dict[str, str] = {}
    if isinstance(sources, list):
        for i, section in enumerate(sources):
            files[section_file(i)] = assemble_component(section)
        files[APP_FILE] = app_shell(sources, head)
    else:
        files[APP_FILE] = assemble_component(sources)
    files[ENTRY_FILE] = entrypoint(runtime_exports)
    logger.debug(f"Assembled {len(files)} local files")
    return files


def render_props(sources: Union[Source, List[Source]], head: Optional[HeadSpec] = None) -> Dict[str, Any]:
    """Props passed to the app when rendering the server build"""
    if isinstance(sources, list):
        props: Dict[str, Any] = {}
        for i, section in enumerate(sources):
            if isinstance(section, ComponentSource) and section.data:
                props[f"component_{i}_props"] = section.data
        props["head_props"] = dict(head.data) if head else {}
        return props
    if isinstance(sources, ComponentSource):
        return dict(sources.data)
    return {}
