"""
Build Card System
================

Portable horse builds: JSON files and PNG "uma cards" carrying the build in a
tEXt chunk, plus assembly of builds from screenshot OCR.

Supports:
- JSON import/export
- Uma card (PNG) import/export
- OCR field resolution to skill and outfit ids
"""

from .card_exporter import BuildCardExporter, PortraitNotFoundError
from .card_importer import BuildCardImporter
from .corpus import CorpusLoadError, SkillCorpus
from .invariants import BuildInvariantManager, derive_unique_skill_id
from .metadata_handler import NotAPngError, PNGFormatError, PNGMetadataHandler, TruncatedPngError
from .models import Aptitude, BuildImportResult, HorseState, ImportStatus, OCRHorseData, Strategy
from .resolver import IdentifierResolver, normalize
from .validator import validate_build

__all__ = [
    'BuildCardExporter',
    'BuildCardImporter',
    'BuildImportResult',
    'BuildInvariantManager',
    'CorpusLoadError',
    'HorseState',
    'IdentifierResolver',
    'ImportStatus',
    'NotAPngError',
    'OCRHorseData',
    'PNGFormatError',
    'PNGMetadataHandler',
    'PortraitNotFoundError',
    'SkillCorpus',
    'Strategy',
    'Aptitude',
    'TruncatedPngError',
    'derive_unique_skill_id',
    'normalize',
    'validate_build',
]
