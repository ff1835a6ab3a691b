from .user import User
from .project import Project
from .deliverable import Deliverable
from .fileasset import DeliverableFile
from .event import WorkflowEvent
