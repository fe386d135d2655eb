"""Entity Store Module"""

from .patient_store import PatientStore

__all__ = [
    "PatientStore",
]
