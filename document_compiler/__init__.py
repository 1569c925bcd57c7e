"""
Document Compiler: compiles document templates with a generative model and
reconciles the user's manual edits with later recompilations.
"""
from .cell_address import from_address, to_address, try_from_address
from .completeness import contains_placeholders, count_placeholders
from .context_window import select_relevant_messages, select_relevant_messages_with_min_context
from .document_merge import merge_user_edits
from .models import DocumentField, DocumentStructure, Message, MergeResult, UserEdit
from .session import DocumentSession, MergedContentCache
from .stream_controller import CompilationController, CompilationOutcome, CompilationState
from .structure_parser import PatternCatalogue, parse_document_structure
from .token_estimator import estimate_tokens

__version__ = "0.1.0"
