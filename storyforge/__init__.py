"""
storyforge - Interactive Novel Engine
A panel of expert agents plans, drafts, critiques and revises a serialized
story one round at a time, with the reader choosing what happens next.
"""

from .workflow import NovelWorkflow, create_workflow

__version__ = "0.1.0"

__all__ = ["NovelWorkflow", "create_workflow", "__version__"]
