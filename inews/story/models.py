"""Story data model for the iNews FTP client.

Field names and meta attributes follow Avid's NSML 2.8 documentation;
field names are camelCased (modify-date becomes modifyDate).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class FieldName(Enum):
    """Well-known story fields, always present in Story.fields."""
    TITLE = "title"
    MODIFY_DATE = "modifyDate"
    PAGE_NUMBER = "pageNumber"
    TAPE_TIME = "tapeTime"
    AUDIO_TIME = "audioTime"
    TOTAL_TIME = "totalTime"
    CUME_TIME = "cumeTime"
    BACK_TIME = "backTime"
    LAYOUT = "layout"
    RUNS_TIME = "runsTime"
    VIDEO_ID = "videoId"


VALID_URGENCIES = (1, 2, 3)


@dataclass
class FieldAttributes:
    """Attributes of an <f> element."""
    uec: bool = False
    urgency: Optional[int] = None
    aready: Optional[str] = None


@dataclass
class Field:
    """A story field. Fields whose element has no text child are left unset."""
    value: str
    attributes: FieldAttributes = field(default_factory=FieldAttributes)


def default_fields() -> Dict[str, Optional[Field]]:
    """Field map with every well-known field present and unset."""
    return {name.value: None for name in FieldName}


@dataclass
class Story:
    """A decoded NSML story."""
    id: Optional[str] = None
    identifier: Optional[str] = None
    locator: Optional[str] = None
    fields: Dict[str, Optional[Field]] = field(default_factory=default_fields)
    meta: Dict[str, str] = field(default_factory=dict)
    # cues[n] holds the lines of <ae id=n>; ids never seen are empty lists
    cues: List[List[str]] = field(default_factory=list)
    body: Optional[str] = None
    attachments: Dict[str, str] = field(default_factory=dict)

    def field_value(self, name: str) -> Optional[str]:
        """Value of a field, or None if the story does not carry it."""
        story_field = self.fields.get(name)
        return story_field.value if story_field is not None else None

    @property
    def title(self) -> Optional[str]:
        """Value of the title field."""
        return self.field_value(FieldName.TITLE.value)

    @property
    def is_floated(self) -> bool:
        """True if the story's meta marks it as floated."""
        return "float" in self.meta
