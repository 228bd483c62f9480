"""
Entity Records Package

Sealed record classes, the validation rule registry and the factory that
builds and scores records.
"""
from .records import RECORD_CLASSES, DataRecord, RecordKind
from .validation import DEPENDENCY_KINDS, ValidationRule, build_validation_rules
from .factory import DataFactory, DataFactoryInstance

__all__ = [
    'RECORD_CLASSES',
    'DataRecord',
    'RecordKind',
    'DEPENDENCY_KINDS',
    'ValidationRule',
    'build_validation_rules',
    'DataFactory',
    'DataFactoryInstance',
]
