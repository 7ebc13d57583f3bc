"""
YamlProjectStore - file-backed implementation of the project repository port.

One ``<project_id>.yml`` per project inside the store directory.
"""
import asyncio
import re
from pathlib import Path
from typing import List, Optional, Union

from wbstree.errors import ValidationError
from wbstree.logs import get_logger
from wbstree.models import Project
from .io import load_model, save_model

log = get_logger("store")

PROJECT_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')

class YamlProjectStore:
    """Reads and writes projects as YAML files."""

    def __init__(self, directory : Union[Path, str]):
        self.directory = Path(directory)

    def path_for(self, project_id : str) -> Path:
        if not PROJECT_ID_PATTERN.match(project_id or ''):
            raise ValidationError(f"Project id not usable as a file name: {project_id!r}")
        return self.directory / f"{project_id}.yml"

    def load(self, project_id : str) -> Optional[Project]:
        return load_model(Project, self.path_for(project_id))

    def save(self, project_id : str, project : Project) -> bool:
        if project.id != project_id:
            raise ValidationError(f"Project {project.id} cannot be saved as {project_id}")
        return save_model(project, self.path_for(project_id), create_dirs=True)

    def list_projects(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.yml"))

    async def load_project(self, project_id : str) -> Optional[Project]:
        return await asyncio.to_thread(self.load, project_id)

    async def save_project(self, project_id : str, project : Project) -> bool:
        log.debug(f"Saving project {project_id} to {self.directory}")
        return await asyncio.to_thread(self.save, project_id, project)
