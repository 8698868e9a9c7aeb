from .python_ingest import (
    IngestConfig,
    IngestResult,
    ParsedModule,
    ParseFailureWitness,
    SourceFile,
    ingest_paths,
    iter_python_paths,
    module_name,
    parse_source,
    parse_source_file,
)

__all__ = [
    "IngestConfig",
    "IngestResult",
    "ParsedModule",
    "ParseFailureWitness",
    "SourceFile",
    "ingest_paths",
    "iter_python_paths",
    "module_name",
    "parse_source",
    "parse_source_file",
]
