"""构建步骤"""

from .build_step import BuildStep
from .installer_compilation_step import InstallerCompilationStep
from .payload_packing_step import PayloadPackingStep
from .script_composition_step import ScriptCompositionStep
from .symbol_table_step import SymbolTableStep
from .uninstaller_step import UninstallerStep
from .update_info_step import UpdateInfoStep

__all__ = [
    'BuildStep',
    'InstallerCompilationStep',
    'PayloadPackingStep',
    'ScriptCompositionStep',
    'SymbolTableStep',
    'UninstallerStep',
    'UpdateInfoStep',
]
