"""
脚本片段提供者
"""

from .base import FragmentContext
from .composer import RUNTIME_FLAGS, ScriptComposer
from .lang import LangConfigurator, compute_message_translations, create_add_langs_macro

__all__ = [
    'FragmentContext',
    'LangConfigurator',
    'RUNTIME_FLAGS',
    'ScriptComposer',
    'compute_message_translations',
    'create_add_langs_macro',
]
