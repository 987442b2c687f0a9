"""
Metadata Scanner - find the upstream link a mod declares about itself.

ResoniteModLoader mods subclass `ResoniteMod` and override the `Link`
property, whose getter usually just returns a string literal. The scanner
reads that literal straight out of the assembly's metadata tables and CIL,
so the mod is never loaded or executed.
"""

import logging
from collections.abc import Callable, Iterator
from typing import Any, Protocol

import dnfile
import pefile
from dncil.cil.body import CilMethodBody
from dncil.cil.body.reader import CilMethodBodyReaderBase
from dncil.cil.error import MethodBodyFormatError
from dncil.cil.opcode import OpCodes

from resonite_mod_updater.core.exceptions import ModuleParseError
from resonite_mod_updater.core.links import UPSTREAM_HOST, is_update_link

logger = logging.getLogger(__name__)

MOD_BASE_TYPE = "ResoniteMod"
LINK_PROPERTY = "Link"


class LinkExtractor(Protocol):
    """Anything that can pull an upstream link out of module bytes."""

    def extract_link(self, data: bytes) -> str | None:
        ...


class DnfileMethodBodyReader(CilMethodBodyReaderBase):
    """Feeds dncil the bytes of a method body located by its RVA."""

    def __init__(self, pe: dnfile.dnPE, rva: int):
        self.pe = pe
        self.offset = pe.get_offset_from_rva(rva)

    def read(self, n: int) -> bytes:
        data = self.pe.get_data(self.pe.get_rva_from_offset(self.offset), n)
        self.offset += n
        return data

    def tell(self) -> int:
        return self.offset

    def seek(self, offset: int) -> int:
        self.offset = offset
        return self.offset


def iter_string_constants(
    reader: CilMethodBodyReaderBase,
    resolve: Callable[[int], str | None],
) -> Iterator[str]:
    """
    Yield the operands of every ldstr instruction in a method body.

    Args:
        reader: Positioned at the start of the method body header
        resolve: Maps a #US heap index to its string

    Yields:
        String literals in instruction order
    """
    try:
        body = CilMethodBody(reader)
    except MethodBodyFormatError as e:
        logger.debug(f"Skipping unreadable method body: {e}")
        return

    for insn in body.instructions:
        if insn.opcode == OpCodes.Ldstr:
            value = resolve(insn.operand.rid)
            if value is not None:
                yield value


def _iter_table(pe: dnfile.dnPE, table_number: int) -> Iterator[tuple[int, Any]]:
    """Yield (rid, row) pairs of a metadata table; rids are 1-based."""
    for index, row in enumerate(pe.net.mdtables.tables.get(table_number, [])):
        yield index + 1, row


class MetadataScanner:
    """
    Extracts the embedded upstream link from a mod assembly.

    Lookup order:
    1. Types whose base type is named `ResoniteMod`, in TypeDef order
    2. Their property named `Link`
    3. The property getter, found through MethodSemantics
    4. The first ldstr operand of the getter that is a usable link
    """

    def __init__(
        self,
        base_type_name: str = MOD_BASE_TYPE,
        property_name: str = LINK_PROPERTY,
        upstream_host: str = UPSTREAM_HOST,
    ):
        self.base_type_name = base_type_name
        self.property_name = property_name
        self.upstream_host = upstream_host

    def extract_link(self, data: bytes) -> str | None:
        """
        Return the module's upstream link, or None if it declares none.

        Raises:
            ModuleParseError: If the bytes are not a .NET assembly
        """
        pe = self._load_assembly(data)
        try:
            for getter in self._iter_link_getters(pe):
                rva = getattr(getter, "Rva", 0)
                if not rva:
                    continue
                reader = DnfileMethodBodyReader(pe, rva)
                for value in iter_string_constants(reader, lambda rid: _user_string(pe, rid)):
                    if is_update_link(value, self.upstream_host):
                        return value
            return None
        finally:
            pe.close()

    def _load_assembly(self, data: bytes) -> dnfile.dnPE:
        """Parse the PE image and require CLR metadata."""
        try:
            pe = dnfile.dnPE(data=data)
        except pefile.PEFormatError as e:
            raise ModuleParseError(f"Not a PE image: {e}") from e

        if pe.net is None or pe.net.mdtables is None:
            pe.close()
            raise ModuleParseError("PE image has no .NET metadata")
        return pe

    def _iter_link_getters(self, pe: dnfile.dnPE) -> Iterator[Any]:
        """Yield MethodDef rows of `Link` getters on mod types, in type order."""
        mod_types = [
            rid
            for rid, row in _iter_table(pe, dnfile.mdtable.TypeDef.number)
            if self._extends_marker(row)
        ]
        if not mod_types:
            return

        properties_by_type: dict[int, list[int]] = {}
        for _, row in _iter_table(pe, dnfile.mdtable.PropertyMap.number):
            parent = row.Parent.row_index
            if parent not in mod_types:
                continue
            for index in row.PropertyList:
                if index.row is not None and str(index.row.Name) == self.property_name:
                    properties_by_type.setdefault(parent, []).append(index.row_index)

        getters: dict[int, Any] = {}
        for _, row in _iter_table(pe, dnfile.mdtable.MethodSemantics.number):
            association = row.Association
            if not row.Semantics.msGetter or association.table is None:
                continue
            if association.table.name == "Property" and row.Method.row is not None:
                getters.setdefault(association.row_index, row.Method.row)

        for type_rid in mod_types:
            for property_rid in properties_by_type.get(type_rid, []):
                getter = getters.get(property_rid)
                if getter is not None:
                    yield getter

    def _extends_marker(self, typedef: Any) -> bool:
        """Return True if the TypeDef's direct base type has the marker name."""
        extends = getattr(typedef, "Extends", None)
        base = getattr(extends, "row", None)
        if base is None:
            return False
        return str(getattr(base, "TypeName", "")) == self.base_type_name


def _user_string(pe: dnfile.dnPE, rid: int) -> str | None:
    """Read a literal from the #US heap."""
    if pe.net.user_strings is None:
        return None
    try:
        user_string = pe.net.user_strings.get(rid)
    except UnicodeDecodeError as e:
        logger.debug(f"Failed to decode #US index 0x{rid:08x}: {e}")
        return None
    value = getattr(user_string, "value", None)
    return value if isinstance(value, str) else None
