"""Run-wide settings collected from the environment and command line."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

LIBRARY_PATH_VAR = 'SCADBATCH_PATH'
BOOLEAN_ENGINE_VAR = 'SCADBATCH_BOOLEAN_ENGINE'

DEFAULT_BOOLEAN_ENGINE = 'manifold'


@dataclass
class RenderSettings:
    """Settings shared by the evaluation and export stages of one run."""
    img_width: int = 512
    img_height: int = 512
    csg_term_limit: int = 100000
    boolean_engine: str = DEFAULT_BOOLEAN_ENGINE
    library_path: List[str] = field(default_factory=list)
    make_command: Optional[str] = None

    @classmethod
    def from_env(cls, environ=None) -> "RenderSettings":
        environ = os.environ if environ is None else environ
        settings = cls()
        raw_path = environ.get(LIBRARY_PATH_VAR, '')
        settings.library_path = [p for p in raw_path.split(os.pathsep) if p]
        engine = environ.get(BOOLEAN_ENGINE_VAR, '').strip()
        if engine:
            settings.boolean_engine = engine
        return settings
