"""Render a :class:`RelayTopology` into an nginx-rtmp configuration file."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .exceptions import IOFailure
from .topology import PUBLISH_APPLICATION, PushPipeline, RelayTopology

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "nginx.conf"

_INDENT = "    "


@dataclass(frozen=True)
class RenderOptions:
    """Host-specific knobs that do not belong to the topology itself."""

    transcoder_binary: str = "ffmpeg"
    work_dir: Optional[Path] = None


def render_config(topology: RelayTopology, options: Optional[RenderOptions] = None) -> str:
    """Return the ingest server configuration text for ``topology``.

    Output is a pure function of the arguments: equal inputs always render
    byte-identical text.
    """

    opts = options or RenderOptions()
    lines: List[str] = ["daemon off;", "worker_processes 1;"]
    if opts.work_dir is not None:
        work_dir = Path(opts.work_dir)
        lines.append(f"pid {(work_dir / 'nginx.pid').as_posix()};")
        lines.append(f"error_log {(work_dir / 'logs' / 'error.log').as_posix()};")
    lines.append("events { worker_connections 1024; }")
    lines.append("")
    lines.append("rtmp {")
    lines.append(f"{_INDENT}server {{")
    body = _indent(2)
    lines.append(f"{body}listen {topology.listen_port};")
    lines.append(f"{body}chunk_size {topology.chunk_size};")
    lines.append(f"{body}allow publish all;")
    lines.append(f"{body}allow play all;")
    lines.append("")
    lines.extend(_ingest_block(topology))
    for pipeline in topology.pipelines:
        lines.extend(_pipeline_block(pipeline, opts.transcoder_binary))
    lines.append(f"{_INDENT}}}")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_config(
    topology: RelayTopology,
    path: Path | str,
    options: Optional[RenderOptions] = None,
) -> Path:
    """Render ``topology`` and atomically replace the file at ``path``."""

    target = Path(path)
    text = render_config(topology, options)
    tmp_path = target.with_name(f".{target.name}.tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        if options is not None and options.work_dir is not None:
            (Path(options.work_dir) / "logs").mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, target)
    except OSError as exc:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise IOFailure(str(target), exc.strerror or str(exc)) from exc
    LOGGER.info(
        "Wrote ingest configuration to %s (%d pipeline(s), port %d)",
        target,
        len(topology.pipelines),
        topology.listen_port,
    )
    return target


def _indent(level: int) -> str:
    return _INDENT * level


def _ingest_block(topology: RelayTopology) -> List[str]:
    outer = _indent(2)
    inner = _indent(3)
    block = [
        f"{outer}application {PUBLISH_APPLICATION} {{",
        f"{inner}live on;",
        f"{inner}record off;",
        "",
    ]
    block.extend(f"{inner}push {pipeline.relay_url};" for pipeline in topology.pipelines)
    block.append(f"{outer}}}")
    block.append("")
    return block


def _pipeline_block(pipeline: PushPipeline, transcoder_binary: str) -> List[str]:
    outer = _indent(2)
    inner = _indent(3)
    cont = _indent(4)
    rate = f"{pipeline.video_bitrate_kbps}k"
    audio = pipeline.audio
    block = [
        f"{outer}application {pipeline.application} {{",
        f"{inner}live on;",
        f"{inner}record off;",
        f"{inner}allow publish 127.0.0.1;",
        f"{inner}deny publish all;",
        "",
        f"{inner}exec {transcoder_binary} -i {pipeline.input_url}",
        f"{cont}-c:v {pipeline.video_codec} -preset {pipeline.preset}",
        f"{cont}-b:v {rate} -maxrate {pipeline.maxrate_kbps}k -bufsize {pipeline.bufsize_kbps}k",
        f"{cont}-pix_fmt {pipeline.pixel_format} -g {pipeline.gop_length} -r {pipeline.frame_rate}",
        f"{cont}-c:a {audio.codec} -b:a {audio.bitrate_kbps}k -ar {audio.sample_rate} -ac {audio.channels}",
    ]
    if pipeline.custom_args:
        block.append(f"{cont}{pipeline.custom_args}")
    block.append(f"{cont}-f flv {pipeline.destination_url};")
    block.append(f"{outer}}}")
    block.append("")
    return block


__all__ = ["CONFIG_FILENAME", "RenderOptions", "render_config", "write_config"]
