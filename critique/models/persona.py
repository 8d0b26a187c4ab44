from enum import Enum


class Persona(str, Enum):
    STRATEGIC = "strategic"
    MIRROR = "mirror"
    MAD_SCIENTIST = "mad"
    EXECUTIVE = "exec"
    CLARITY = "clarity"


class AnalysisMode(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
