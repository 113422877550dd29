"""
NSIS 脚本生成器

按调用顺序累积顶层声明（include 目录、插件目录、命令行标志、File 指令、include、insertmacro），
以及命名宏；build() 输出 声明 + 宏 的文本，模板正文由调用方追加在后面。
build() 是纯函数，多次调用结果相同。
"""

from pathlib import Path, PureWindowsPath
from typing import Dict, Iterable, List, Optional, Sequence, Union

PathLike = Union[str, Path, PureWindowsPath]

UNICODE_PLUGIN_ARCH = "x86-unicode"
ANSI_PLUGIN_ARCH = "x86-ansi"


class ScriptGeneratorError(ValueError):
    """脚本声明冲突"""
    pass


def flag_variable_name(flag_name: str) -> str:
    """命令行标志对应的 NSIS 变量名：allusers → isForAllUsers，force-run → isForceRun"""
    if flag_name == "allusers":
        return "isForAllUsers"
    if flag_name == "currentuser":
        return "isForCurrentUser"
    parts = [part for part in flag_name.split("-") if part]
    return "is" + "".join(part[0].upper() + part[1:] for part in parts)


def _flag_block(flag_name: str) -> str:
    variable = flag_variable_name(flag_name)
    return (
        f"!macro _{variable} _a _b _t _f\n"
        f"  ${{StdUtils.TestParameter}} $R9 \"{flag_name}\"\n"
        f"  StrCmp \"$R9\" \"true\" `${{_t}}` `${{_f}}`\n"
        f"!macroend\n"
        f"!define {variable} `\"\" {variable} \"\"`\n"
    )


class ScriptGenerator:
    """脚本文档：声明按调用顺序保留，宏在声明之后输出"""

    def __init__(self):
        self._declarations: List[str] = []
        self._macros: Dict[str, List[str]] = {}
        self._flags: Dict[str, str] = {}

    # 声明

    def add_include_dir(self, directory: PathLike) -> 'ScriptGenerator':
        self._declarations.append(f'!addincludedir "{directory}"')
        return self

    def add_plugin_dir(self, plugin_arch: str, directory: PathLike) -> 'ScriptGenerator':
        self._declarations.append(f'!addplugindir /{plugin_arch} "{directory}"')
        return self

    def include(self, file: PathLike) -> 'ScriptGenerator':
        self._declarations.append(f'!include "{file}"')
        return self

    def file(self, output_name: Optional[str], file: PathLike) -> 'ScriptGenerator':
        """File 指令；output_name 为安装后的目标路径"""
        if output_name is None:
            self._declarations.append(f'File "{file}"')
        else:
            self._declarations.append(f'File "/oname={output_name}" "{file}"')
        return self

    def insert_macro(self, name: str, parameters: str) -> 'ScriptGenerator':
        self._declarations.append(f"!insertmacro {name} {parameters}")
        return self

    def flags(self, flag_names: Iterable[str]) -> 'ScriptGenerator':
        """声明安装器运行时可识别的命令行标志（/allusers、--updated 等）

        同名标志重复声明时若内容相同则忽略，否则报错。
        """
        for flag_name in flag_names:
            block = _flag_block(flag_name)
            existing = self._flags.get(flag_name)
            if existing is not None:
                if existing != block:
                    raise ScriptGeneratorError(f"标志重复声明且内容不同: {flag_name}")
                continue
            self._flags[flag_name] = block
            self._declarations.append(block)
        return self

    # 宏

    def macro(self, name: str, body: Union['ScriptGenerator', Sequence[str]]) -> 'ScriptGenerator':
        lines = body.lines() if isinstance(body, ScriptGenerator) else list(body)
        existing = self._macros.get(name)
        if existing is not None:
            if existing != lines:
                raise ScriptGeneratorError(f"宏重复定义且内容不同: {name}")
            return self
        self._macros[name] = lines
        return self

    def has_macro(self, name: str) -> bool:
        return name in self._macros

    @property
    def macro_names(self) -> List[str]:
        return list(self._macros)

    # 组合

    def merge(self, other: 'ScriptGenerator') -> 'ScriptGenerator':
        """按顺序并入另一个片段的声明与宏"""
        for flag_name, block in other._flags.items():
            existing = self._flags.get(flag_name)
            if existing is not None and existing != block:
                raise ScriptGeneratorError(f"标志重复声明且内容不同: {flag_name}")
        for line in other._declarations:
            if line in other._flags.values() and line in self._flags.values():
                continue
            self._declarations.append(line)
        self._flags.update(other._flags)
        for name, lines in other._macros.items():
            self.macro(name, lines)
        return self

    def is_empty(self) -> bool:
        return not self._declarations and not self._macros

    def lines(self) -> List[str]:
        result = list(self._declarations)
        for name, body in self._macros.items():
            result.append(f"!macro {name}")
            result.append("  " + "\n  ".join(body))
            result.append("!macroend\n")
        return result

    def build(self) -> str:
        return "\n".join(self.lines()) + "\n"
