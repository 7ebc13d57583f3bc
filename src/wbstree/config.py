"""
Runtime settings for wbstree, read from ``WBSTREE_*`` environment variables.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "WBSTREE_"


class Settings(BaseModel):
    """Tunables shared by the tree view, the CLI and the file store."""

    data_dir: Path = Field(default=Path(".wbs"), description="Directory holding <project_id>.yml files")
    smart_expand_max_nodes: int = Field(default=500, ge=0, description="Default bound for smart expansion")
    view_expand_all_max_nodes: int = Field(default=200, ge=0, description="Bound used by the view's expand-all")
    default_expand_level: int = Field(default=1, ge=0, le=4, description="Levels expanded when a view opens")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'Settings':
        """Build settings from the environment, ignoring unset or empty variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper(), '')
            if raw:
                values[name] = raw
        # Short alias kept for the expand-all bound
        raw = environ.get(ENV_PREFIX + "EXPAND_ALL_MAX_NODES", '')
        if raw and 'view_expand_all_max_nodes' not in values:
            values['view_expand_all_max_nodes'] = raw
        return cls.model_validate(values)
