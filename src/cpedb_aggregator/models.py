from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import UpstreamDecodeError


@dataclass
class Title:
    title: str
    lang: str

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "lang": self.lang}


@dataclass
class DeprecatedCpe:
    cpe_name: str
    cpe_name_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"cpeName": self.cpe_name, "cpeNameId": self.cpe_name_id}


@dataclass
class CpeRecord:
    """One product entry as returned by the NVD CPE API (``products[].cpe``)."""

    cpe_name: str
    cpe_name_id: str
    deprecated: bool = False
    last_modified: str = ""
    created: str = ""
    titles: List[Title] = field(default_factory=list)
    deprecated_by: List[DeprecatedCpe] = field(default_factory=list)

    @classmethod
    def from_api(cls, product: Any) -> "CpeRecord":
        if not isinstance(product, dict) or not isinstance(product.get("cpe"), dict):
            raise UpstreamDecodeError(f"product entry without a cpe object: {product!r}")
        cpe = product["cpe"]
        for key in ("titles", "deprecatedBy"):
            if cpe.get(key) is not None and not isinstance(cpe[key], list):
                raise UpstreamDecodeError(f"cpe.{key} is not a list: {cpe[key]!r}")
        try:
            titles = [Title(str(t.get("title") or ""), str(t.get("lang") or "")) for t in cpe.get("titles") or []]
            deprecated_by = [
                DeprecatedCpe(str(d.get("cpeName") or ""), str(d.get("cpeNameId") or ""))
                for d in cpe.get("deprecatedBy") or []
            ]
        except (AttributeError, TypeError) as exc:
            raise UpstreamDecodeError(f"malformed cpe entry: {exc}") from exc
        return cls(
            cpe_name=str(cpe.get("cpeName") or ""),
            cpe_name_id=str(cpe.get("cpeNameId") or ""),
            deprecated=bool(cpe.get("deprecated", False)),
            last_modified=str(cpe.get("lastModified") or ""),
            created=str(cpe.get("created") or ""),
            titles=titles,
            deprecated_by=deprecated_by,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpe": {
                "deprecated": self.deprecated,
                "cpeName": self.cpe_name,
                "cpeNameId": self.cpe_name_id,
                "lastModified": self.last_modified,
                "created": self.created,
                "titles": [t.to_dict() for t in self.titles],
                "deprecatedBy": [d.to_dict() for d in self.deprecated_by],
            }
        }


@dataclass
class OpenCpeProduct:
    name: str
    title: str = ""
    deprecated: bool = False
    deprecated_over: str = ""

    @classmethod
    def from_record(cls, record: CpeRecord) -> "OpenCpeProduct":
        title = ""
        for t in record.titles:
            # first title seen, overridden by any english one
            if not title or t.lang == "en":
                title = t.title
        deprecated_over = ""
        if record.deprecated and record.deprecated_by:
            deprecated_over = record.deprecated_by[0].cpe_name
        return cls(name=record.cpe_name, title=title, deprecated=record.deprecated, deprecated_over=deprecated_over)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "OpenCpeProduct":
        return cls(
            name=str(raw.get("name") or ""),
            title=str(raw.get("title") or ""),
            deprecated=bool(raw.get("deprecated", False)),
            deprecated_over=str(raw.get("deprecated_over") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "deprecated": self.deprecated,
            "deprecated_over": self.deprecated_over,
        }


@dataclass
class ShardData:
    nist: List[CpeRecord] = field(default_factory=list)
    opencpe: List[OpenCpeProduct] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.nist and not self.opencpe

    def add(self, record: CpeRecord) -> None:
        self.nist.append(record)
        self.opencpe.append(OpenCpeProduct.from_record(record))

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ShardData":
        raw = raw or {}
        return cls(
            nist=[CpeRecord.from_api(p) for p in raw.get("nist") or []],
            opencpe=[OpenCpeProduct.from_dict(p) for p in raw.get("opencpe") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nist": [r.to_dict() for r in self.nist],
            "opencpe": [p.to_dict() for p in self.opencpe],
        }


@dataclass
class Page:
    total_results: int
    records: List[CpeRecord]
