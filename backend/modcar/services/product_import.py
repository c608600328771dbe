"""
Importação em massa de produtos (.xlsx, .xls, .csv).

Fluxo em duas etapas para o router poder aplicar a cota do plano
entre elas:

  plan = prepare_import(db, partner_id, filename, content)
  check_product_limit(db, partner_id, adding=len(plan.valid))
  commit_import(db, partner_id, plan)

Linhas inválidas não bloqueiam as válidas; cada uma gera um item em
``plan.errors`` com o número da linha na planilha (cabeçalho = 1).
"""
from __future__ import annotations

import csv
import io
import logging
import os
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import openpyxl
import xlrd
from sqlalchemy.orm import Session

from modcar import models
from modcar.config import settings

logger = logging.getLogger("modcar.product_import")

SUPPORTED_EXTENSIONS = {".xlsx", ".xls", ".csv"}

# (coluna, exemplo, obrigatória)
COLUMNS: List[Tuple[str, str, bool]] = [
    ("Código", "FOP-001", True),
    ("Nome", "Filtro de Óleo Premium", True),
    ("Categoria", "Filtros", True),
    ("Marca", "Bosch", True),
    ("Preço", "45.90", True),
    ("Estoque", "120", True),
    ("Descrição", "Descrição do produto", False),
    ("Compatibilidade", "Gol, Palio, Uno", False),
]
REQUIRED_COLUMNS = [name for name, _, required in COLUMNS if required]

_FIELD_BY_COLUMN = {
    "codigo": "code",
    "nome": "name",
    "categoria": "category",
    "marca": "brand",
    "preco": "price",
    "estoque": "stock",
    "descricao": "description",
    "compatibilidade": "compatibility",
}


class ImportValidationError(Exception):
    pass


@dataclass
class ImportPlan:
    total_rows: int = 0
    valid: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


# ============================================================
# LEITURA
# ============================================================
def _normalize_header(value: str) -> str:
    text = unicodedata.normalize("NFKD", str(value or "").strip().lower())
    return "".join(c for c in text if not unicodedata.combining(c))


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # xls/xlsx devolvem 120 como 120.0
        return str(int(value))
    return str(value).strip()


def _read_xlsx(content: bytes) -> Tuple[List[str], List[List[str]]]:
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        rows = wb.active.iter_rows(values_only=True)
        header = [_cell(c) for c in next(rows, ())]
        body = [[_cell(c) for c in row] for row in rows]
    finally:
        wb.close()
    return header, body


def _read_xls(content: bytes) -> Tuple[List[str], List[List[str]]]:
    book = xlrd.open_workbook(file_contents=content)
    sheet = book.sheet_by_index(0)
    if sheet.nrows == 0:
        return [], []
    header = [_cell(sheet.cell_value(0, col)) for col in range(sheet.ncols)]
    body = [
        [_cell(sheet.cell_value(row, col)) for col in range(sheet.ncols)]
        for row in range(1, sheet.nrows)
    ]
    return header, body


def _read_csv(content: bytes) -> Tuple[List[str], List[List[str]]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")

    first_line = text.split("\n", 1)[0]
    delimiter = ";" if first_line.count(";") > first_line.count(",") else ","
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    header = [cell.strip() for cell in next(reader, [])]
    body = [[cell.strip() for cell in row] for row in reader]
    return header, body


def read_rows(filename: str, content: bytes) -> Tuple[List[str], List[List[str]]]:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ImportValidationError("Formato inválido. Use .xlsx, .xls ou .csv")
    if not content:
        raise ImportValidationError("Arquivo vazio.")
    if len(content) > settings.IMPORT_MAX_BYTES:
        raise ImportValidationError("Arquivo excede o tamanho maximo permitido.")

    try:
        if ext == ".xlsx":
            return _read_xlsx(content)
        if ext == ".xls":
            return _read_xls(content)
        return _read_csv(content)
    except ImportValidationError:
        raise
    except Exception as exc:
        logger.warning("unreadable spreadsheet %s: %s", filename, exc)
        raise ImportValidationError("Não foi possível ler a planilha.") from exc


# ============================================================
# VALIDAÇÃO
# ============================================================
def _map_columns(header: List[str]) -> Dict[str, int]:
    positions: Dict[str, int] = {}
    for idx, name in enumerate(header):
        key = _FIELD_BY_COLUMN.get(_normalize_header(name))
        if key and key not in positions:
            positions[key] = idx

    missing = [
        name for name in REQUIRED_COLUMNS
        if _FIELD_BY_COLUMN[_normalize_header(name)] not in positions
    ]
    if missing:
        raise ImportValidationError(f"Colunas obrigatórias ausentes: {', '.join(missing)}")
    return positions


def _parse_price(raw: str) -> Optional[float]:
    text = raw.replace("R$", "").replace(" ", "")
    if "," in text:
        # 1.234,56 → 1234.56
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return None


def _parse_stock(raw: str) -> Optional[int]:
    try:
        value = float(raw)
    except ValueError:
        return None
    return int(value) if value.is_integer() else None


def _parse_compatibility(raw: str) -> List[Dict[str, str]]:
    return [
        {"brand": "", "model": item.strip(), "year": ""}
        for item in raw.split(",")
        if item.strip()
    ]


def validate_rows(
    header: List[str],
    rows: Iterable[List[str]],
    existing_codes: Set[str],
) -> ImportPlan:
    positions = _map_columns(header)
    plan = ImportPlan()
    seen: Set[str] = set()

    for line_no, row in enumerate(rows, start=2):
        if not any(cell for cell in row):
            continue
        plan.total_rows += 1

        def get(key: str) -> str:
            idx = positions.get(key)
            return row[idx].strip() if idx is not None and idx < len(row) else ""

        errors: List[str] = []
        code = get("code")
        name = get("name")
        category = get("category")
        brand = get("brand")

        if not code:
            errors.append("Código é obrigatório")
        elif code in seen:
            errors.append(f"Código {code} repetido na planilha")
        elif code in existing_codes:
            errors.append(f"Código {code} já cadastrado")

        if len(name) < 3:
            errors.append("Nome deve ter no mínimo 3 caracteres")
        if not category:
            errors.append("Categoria é obrigatória")
        if not brand:
            errors.append("Marca é obrigatória")

        price = _parse_price(get("price"))
        if price is None:
            errors.append("Preço inválido")
        elif price < 0:
            errors.append("Preço não pode ser negativo")

        stock = _parse_stock(get("stock"))
        if stock is None:
            errors.append("Estoque inválido")
        elif stock < 0:
            errors.append("Estoque não pode ser negativo")

        if code:
            seen.add(code)

        if errors:
            plan.errors.append({"row": line_no, "errors": errors})
            continue

        plan.valid.append(
            {
                "code": code,
                "name": name,
                "category": category,
                "brand": brand,
                "price": price,
                "stock": stock,
                "description": get("description") or None,
                "compatibility": _parse_compatibility(get("compatibility")),
            }
        )

    return plan


# ============================================================
# OPERAÇÃO
# ============================================================
def prepare_import(db: Session, partner_id: str, filename: str, content: bytes) -> ImportPlan:
    header, rows = read_rows(filename, content)
    if not header:
        raise ImportValidationError("Planilha sem cabeçalho.")

    existing = {
        code
        for (code,) in db.query(models.Product.code)
        .filter(models.Product.partner_id == partner_id)
        .all()
    }
    plan = validate_rows(header, rows, existing)
    if plan.total_rows == 0:
        raise ImportValidationError("Planilha sem produtos.")
    return plan


def commit_import(db: Session, partner_id: str, plan: ImportPlan) -> int:
    for data in plan.valid:
        db.add(
            models.Product(
                partner_id=partner_id,
                status="pending",
                images=[],
                technical_specs={},
                **data,
            )
        )
    db.commit()
    logger.info(
        "import partner=%s rows=%d imported=%d errors=%d",
        partner_id, plan.total_rows, len(plan.valid), len(plan.errors),
    )
    return len(plan.valid)


# ============================================================
# TEMPLATE
# ============================================================
def build_template() -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Produtos"
    ws.append([name for name, _, _ in COLUMNS])

    help_ws = wb.create_sheet("Instruções")
    help_ws.append(["Campo", "Exemplo", "Obrigatório"])
    for name, example, required in COLUMNS:
        help_ws.append([name, example, "Sim" if required else "Não"])

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
