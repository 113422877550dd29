"""
符号表

makensis 的预处理符号：defines（-D）与 commands（-X）。
标志型 define 显式建模为 ``Define(value=None)``，而不是依赖"键存在即为真"。
符号表在调用编译器前冻结，冻结后的任何修改都会报错。
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Union

CommandValue = Union[str, List[str]]


class FrozenSymbolTableError(RuntimeError):
    """符号表已冻结，不允许修改"""
    pass


@dataclass(frozen=True)
class Define:
    """单个预处理定义；value 为 None 表示无值标志"""
    name: str
    value: Optional[str] = None

    @property
    def is_flag(self) -> bool:
        return self.value is None

    def to_argument(self) -> str:
        if self.is_flag:
            return f"-D{self.name}"
        return f"-D{self.name}={self.value}"


class SymbolTable:
    """defines 与 commands 两张并列的表"""

    def __init__(self):
        self._defines: Dict[str, Define] = {}
        self._commands: Dict[str, CommandValue] = {}
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise FrozenSymbolTableError("符号表已冻结，编译器调用之后不能再修改")

    # defines

    def define(self, name: str, value: Union[str, int]) -> None:
        """设置带值的 define（同名覆盖）"""
        self._check_mutable()
        self._defines[name] = Define(name, str(value))

    def set_flag(self, name: str) -> None:
        """设置无值标志"""
        self._check_mutable()
        self._defines[name] = Define(name)

    def remove(self, name: str) -> None:
        self._check_mutable()
        self._defines.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._defines

    def is_flag(self, name: str) -> bool:
        define = self._defines.get(name)
        return define is not None and define.is_flag

    def get(self, name: str) -> Optional[str]:
        define = self._defines.get(name)
        return None if define is None else define.value

    def update(self, defines: Dict[str, Optional[str]]) -> None:
        """合并一组 define；值为 None 的作为标志"""
        for name, value in defines.items():
            if value is None:
                self.set_flag(name)
            else:
                self.define(name, value)

    @property
    def defines(self) -> List[Define]:
        return list(self._defines.values())

    def define_names(self) -> List[str]:
        return list(self._defines)

    # commands

    def command(self, name: str, value: CommandValue) -> None:
        self._check_mutable()
        self._commands[name] = list(value) if isinstance(value, list) else value

    def get_command(self, name: str) -> Optional[CommandValue]:
        return self._commands.get(name)

    def iter_commands(self) -> Iterator[tuple]:
        return iter(self._commands.items())

    # 生命周期

    def freeze(self) -> 'SymbolTable':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def copy(self) -> 'SymbolTable':
        """返回可修改的副本"""
        table = SymbolTable()
        table._defines = dict(self._defines)
        table._commands = {k: list(v) if isinstance(v, list) else v for k, v in self._commands.items()}
        return table

    def to_dict(self) -> Dict[str, Dict[str, Optional[CommandValue]]]:
        return {
            'defines': {d.name: d.value for d in self._defines.values()},
            'commands': dict(self._commands),
        }

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def __repr__(self) -> str:
        return f"SymbolTable(defines={len(self._defines)}, commands={len(self._commands)}, frozen={self._frozen})"
