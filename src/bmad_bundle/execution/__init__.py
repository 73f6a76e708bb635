"""Prompt pack rendering package."""

from bmad_bundle.execution.assembler import RenderResult, build_prompt_pack, render
from bmad_bundle.execution.outputs import OutputRegistry, output_id_for_path

__all__ = ["OutputRegistry", "RenderResult", "build_prompt_pack", "output_id_for_path", "render"]
