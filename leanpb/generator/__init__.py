"""leanpb Protocol Buffers code generator."""

from .config import GeneratorConfig as GeneratorConfig
from .descriptor import load_descriptor_set as load_descriptor_set
from .linker import TypeRegistry as TypeRegistry
from .linker import link as link
from .linker import load as load
from .parser import ParseError as ParseError
from .parser import ValidationError as ValidationError
from .parser import parse as parse
from .python import GenerationResult as GenerationResult
from .python import generate_files as generate_files
from .python import render as render
from .sizes import MessageSizeInfo as MessageSizeInfo
from .sizes import SizeCalculator as SizeCalculator
from .sizes import SizeInfo as SizeInfo
from .sizes import SizeKind as SizeKind
from .sizes import calculate_sizes as calculate_sizes
from .types import *
from .validator import Diagnostic as Diagnostic
from .validator import SchemaValidationError as SchemaValidationError
