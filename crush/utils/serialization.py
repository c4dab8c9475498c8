"""NDJSON serialization used for partition maps, provenance and records."""
import json
from typing import Any, Dict


def to_ndjson(record: Any) -> str:
    """
    Convert record to NDJSON line (newline-delimited JSON).
    
    Args:
        record: JSON-serializable value (non-serializable leaves become strings)
        
    Returns:
        JSON string with newline
    """
    return json.dumps(record, separators=(',', ':'), default=str) + '\n'


def from_ndjson(line: str) -> Any:
    """
    Parse NDJSON line back to a Python value.
    
    Args:
        line: JSON string (with or without newline)
        
    Returns:
        Parsed value
    """
    return json.loads(line.strip())


def provenance_record(source_path: str, output_path: str, bucket: str) -> Dict[str, Any]:
    """
    Build the record that maps a crushed source file to its output file.
    
    Args:
        source_path: Original small file
        output_path: Crushed file that now holds its records
        bucket: Bucket the source file was merged in
        
    Returns:
        Dictionary ready for NDJSON serialization
    """
    return {
        "source": source_path,
        "output": output_path,
        "bucket": bucket,
    }
