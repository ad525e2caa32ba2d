# pushgate/engine/schema.py
"""
Declarative file schemas.

A schema only knows what a file may look like (size, MIME type, extension,
image dimensions, batch count). It never talks to storage. Everything is
validated against client-declared FileMetadata, so none of this is proof of
what actually lands in the bucket.

    image().max("5MB").formats(["jpeg", "png"])
    file(max_size="10MB", allowed_types=["application/pdf"])
    object({"cover": image().max("2MB"), "attachments": file().array(max=5).optional()})
"""
from __future__ import annotations

import inspect
import re
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pushgate.core.errors import ConfigError
from pushgate.schemas.uploads import FileMetadata

Size = Union[int, float, str]

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)?$", re.IGNORECASE)
_MULTIPLIERS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}

IMAGE_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
    "svg": "image/svg+xml",
}


def parse_size(size: Size) -> int:
    """'5MB' -> 5242880. Numbers are bytes."""
    if isinstance(size, bool):
        raise ConfigError(f"Invalid size format: {size!r}")
    if isinstance(size, (int, float)):
        if size < 0:
            raise ConfigError(f"Invalid size format: {size!r}")
        return int(size)
    m = _SIZE_RE.match(str(size).strip())
    if not m:
        raise ConfigError(f"Invalid size format: {size}")
    unit = (m.group(2) or "B").upper()
    return int(float(m.group(1)) * _MULTIPLIERS[unit])


def format_size(num_bytes: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    idx = 0
    while size >= 1024 and idx < len(units) - 1:
        size /= 1024
        idx += 1
    return f"{size:.{0 if idx == 0 else 1}f}{units[idx]}"


# ----------------------------------------------------
# Results
# ----------------------------------------------------
@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    path: Tuple[str, ...] = ()

    def prefixed(self, *parts: str) -> "ValidationIssue":
        return replace(self, path=tuple(parts) + self.path)


@dataclass(frozen=True)
class ValidationResult:
    success: bool
    error: Optional[ValidationIssue] = None

    @staticmethod
    def ok() -> "ValidationResult":
        return ValidationResult(success=True)

    @staticmethod
    def fail(code: str, message: str, path: Sequence[str] = ()) -> "ValidationResult":
        return ValidationResult(success=False, error=ValidationIssue(code, message, tuple(path)))


# ----------------------------------------------------
# Constraints
# ----------------------------------------------------
@dataclass(frozen=True)
class Dimensions:
    min_width: Optional[int] = None
    max_width: Optional[int] = None
    min_height: Optional[int] = None
    max_height: Optional[int] = None

    def check(self, width: Optional[int], height: Optional[int]) -> Optional[str]:
        if width is not None:
            if self.min_width is not None and width < self.min_width:
                return f"Image width {width}px is below minimum {self.min_width}px"
            if self.max_width is not None and width > self.max_width:
                return f"Image width {width}px exceeds maximum {self.max_width}px"
        if height is not None:
            if self.min_height is not None and height < self.min_height:
                return f"Image height {height}px is below minimum {self.min_height}px"
            if self.max_height is not None and height > self.max_height:
                return f"Image height {height}px exceeds maximum {self.max_height}px"
        return None


@dataclass(frozen=True)
class FileConstraints:
    max_size: Optional[int] = None
    min_size: Optional[int] = None
    allowed_types: Tuple[str, ...] = ()
    allowed_extensions: Tuple[str, ...] = ()
    dimensions: Optional[Dimensions] = None

    @staticmethod
    def build(
        max_size: Optional[Size] = None,
        min_size: Optional[Size] = None,
        allowed_types: Optional[Sequence[str]] = None,
        allowed_extensions: Optional[Sequence[str]] = None,
        dimensions: Optional[Dimensions] = None,
    ) -> "FileConstraints":
        return FileConstraints(
            max_size=parse_size(max_size) if max_size is not None else None,
            min_size=parse_size(min_size) if min_size is not None else None,
            allowed_types=tuple(allowed_types or ()),
            allowed_extensions=tuple(e.lower().lstrip(".") for e in (allowed_extensions or ())),
            dimensions=dimensions,
        )

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.max_size is not None:
            out["maxSize"] = self.max_size
        if self.min_size is not None:
            out["minSize"] = self.min_size
        if self.allowed_types:
            out["allowedTypes"] = list(self.allowed_types)
        if self.allowed_extensions:
            out["allowedExtensions"] = list(self.allowed_extensions)
        if self.dimensions is not None:
            out["dimensions"] = {k: v for k, v in self.dimensions.__dict__.items() if v is not None}
        return out


def mime_allowed(mime: str, allowed: Sequence[str]) -> bool:
    for t in allowed:
        if t.endswith("/*"):
            if mime.startswith(t[:-1]):
                return True
        elif mime == t:
            return True
    return False


Refinement = Callable[[FileMetadata], Union[bool, Awaitable[bool]]]


# ----------------------------------------------------
# Schemas
# ----------------------------------------------------
class Schema:
    kind: str = "base"

    def __init__(self) -> None:
        self._refinements: Tuple[Tuple[Refinement, str], ...] = ()
        self._optional = False

    # -- validation --
    async def validate(self, file: FileMetadata, *, index: Optional[int] = None) -> ValidationResult:
        result = self._check(file)
        if not result.success:
            return result
        for fn, message in self._refinements:
            try:
                passed = fn(file)
                if inspect.isawaitable(passed):
                    passed = await passed
            except Exception as e:
                return ValidationResult.fail("CUSTOM_VALIDATION", f"{message}: {e}")
            if not passed:
                return ValidationResult.fail("CUSTOM_VALIDATION", message)
        return ValidationResult.ok()

    def validate_batch(self, files: Sequence[FileMetadata]) -> Optional[ValidationIssue]:
        """Batch-level checks (file count). None when the batch is acceptable."""
        return None

    def _check(self, file: FileMetadata) -> ValidationResult:
        return ValidationResult.ok()

    # -- chainable --
    def refine(self, fn: Refinement, message: str):
        clone = self._clone()
        clone._refinements = self._refinements + ((fn, message),)
        return clone

    def optional(self):
        clone = self._clone()
        clone._optional = True
        return clone

    @property
    def is_optional(self) -> bool:
        return self._optional

    def with_defaults(self, max_size: Optional[Size] = None, allowed_types: Optional[Sequence[str]] = None):
        return self

    def describe(self) -> Dict[str, Any]:
        return {"type": self.kind}

    def _clone(self):
        raise NotImplementedError

    def _copy_state(self, clone: "Schema") -> "Schema":
        clone._refinements = self._refinements
        clone._optional = self._optional
        return clone

    # -- route integration --
    def middleware(self, fn):
        from pushgate.engine.route import Route

        return Route(self).middleware(fn)

    def paths(self, **kwargs):
        from pushgate.engine.route import Route

        return Route(self).paths(**kwargs)

    def on_upload_start(self, hook):
        from pushgate.engine.route import Route

        return Route(self).on_upload_start(hook)

    def on_upload_complete(self, hook):
        from pushgate.engine.route import Route

        return Route(self).on_upload_complete(hook)

    def on_upload_error(self, hook):
        from pushgate.engine.route import Route

        return Route(self).on_upload_error(hook)


class FileSchema(Schema):
    kind = "file"

    def __init__(self, constraints: Optional[FileConstraints] = None) -> None:
        super().__init__()
        self.constraints = constraints or FileConstraints()

    def _check(self, file: FileMetadata) -> ValidationResult:
        c = self.constraints

        if c.max_size is not None and file.size > c.max_size:
            return ValidationResult.fail(
                "FILE_TOO_LARGE",
                f"File size {format_size(file.size)} exceeds maximum {format_size(c.max_size)}",
            )
        if c.min_size is not None and file.size < c.min_size:
            return ValidationResult.fail(
                "FILE_TOO_SMALL",
                f"File size {format_size(file.size)} is below minimum {format_size(c.min_size)}",
            )

        if c.allowed_types and not mime_allowed(file.type or "", c.allowed_types):
            return ValidationResult.fail(
                "INVALID_FILE_TYPE",
                f"File type {file.type or 'unknown'} is not allowed. "
                f"Allowed types: {', '.join(c.allowed_types)}",
            )

        if c.allowed_extensions:
            ext = file.extension
            if not ext or ext not in c.allowed_extensions:
                return ValidationResult.fail(
                    "INVALID_FILE_EXTENSION",
                    f"File extension .{ext or ''} is not allowed. "
                    f"Allowed extensions: {', '.join(c.allowed_extensions)}",
                )

        if c.dimensions is not None:
            problem = c.dimensions.check(file.width, file.height)
            if problem:
                return ValidationResult.fail("INVALID_DIMENSIONS", problem)

        return ValidationResult.ok()

    def _with(self, **changes):
        return self._copy_state(type(self)(replace(self.constraints, **changes)))

    def max(self, size: Size):
        return self._with(max_size=parse_size(size))

    def min(self, size: Size):
        return self._with(min_size=parse_size(size))

    def types(self, allowed_types: Sequence[str]):
        return self._with(allowed_types=tuple(allowed_types))

    def extensions(self, allowed_extensions: Sequence[str]):
        return self._with(allowed_extensions=tuple(e.lower().lstrip(".") for e in allowed_extensions))

    def array(self, min: Optional[int] = None, max: Optional[int] = None, length: Optional[int] = None):
        return ArraySchema(self, min=min, max=max, length=length)

    def with_defaults(self, max_size: Optional[Size] = None, allowed_types: Optional[Sequence[str]] = None):
        changes: Dict[str, Any] = {}
        if max_size is not None and self.constraints.max_size is None:
            changes["max_size"] = parse_size(max_size)
        if allowed_types and not self.constraints.allowed_types:
            changes["allowed_types"] = tuple(allowed_types)
        return self._with(**changes) if changes else self

    def describe(self) -> Dict[str, Any]:
        return {"type": self.kind, "constraints": self.constraints.as_dict(), "optional": self._optional}

    def _clone(self):
        return self._copy_state(type(self)(self.constraints))


class ImageSchema(FileSchema):
    kind = "image"

    def __init__(self, constraints: Optional[FileConstraints] = None) -> None:
        constraints = constraints or FileConstraints()
        if not constraints.allowed_types:
            constraints = replace(constraints, allowed_types=("image/*",))
        super().__init__(constraints)

    def formats(self, formats: Sequence[str]):
        mimes = tuple(IMAGE_MIME.get(f.lower(), f"image/{f.lower()}") for f in formats)
        # keep order, drop duplicates (jpg + jpeg)
        return self._with(allowed_types=tuple(dict.fromkeys(mimes)))

    def dimensions(
        self,
        min_width: Optional[int] = None,
        max_width: Optional[int] = None,
        min_height: Optional[int] = None,
        max_height: Optional[int] = None,
    ):
        return self._with(dimensions=Dimensions(min_width, max_width, min_height, max_height))


class ArraySchema(Schema):
    kind = "array"

    def __init__(
        self,
        element: Schema,
        min: Optional[int] = None,
        max: Optional[int] = None,
        length: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.element = element
        self.min_items = min
        self.max_items = max
        self.length = length

    async def validate(self, file: FileMetadata, *, index: Optional[int] = None) -> ValidationResult:
        result = await self.element.validate(file)
        if not result.success and index is not None:
            return ValidationResult(success=False, error=result.error.prefixed(f"[{index}]"))
        if not result.success:
            return result
        return await super().validate(file, index=index)

    def validate_batch(self, files: Sequence[FileMetadata]) -> Optional[ValidationIssue]:
        n = len(files)
        if self.min_items is not None and n < self.min_items:
            return ValidationIssue("ARRAY_TOO_SHORT", f"Array must have at least {self.min_items} items")
        if self.max_items is not None and n > self.max_items:
            return ValidationIssue("ARRAY_TOO_LONG", f"Array must have at most {self.max_items} items")
        if self.length is not None and n != self.length:
            return ValidationIssue("ARRAY_WRONG_LENGTH", f"Array must have exactly {self.length} items")
        return None

    def min(self, count: int) -> "ArraySchema":
        return self._copy_state(ArraySchema(self.element, count, self.max_items, self.length))

    def max(self, count: int) -> "ArraySchema":
        return self._copy_state(ArraySchema(self.element, self.min_items, count, self.length))

    def exact(self, count: int) -> "ArraySchema":
        return self._copy_state(ArraySchema(self.element, self.min_items, self.max_items, count))

    def with_defaults(self, max_size: Optional[Size] = None, allowed_types: Optional[Sequence[str]] = None):
        element = self.element.with_defaults(max_size, allowed_types)
        return self._copy_state(ArraySchema(element, self.min_items, self.max_items, self.length))

    def describe(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.kind, "element": self.element.describe()}
        for k, v in (("min", self.min_items), ("max", self.max_items), ("length", self.length)):
            if v is not None:
                out[k] = v
        return out

    def _clone(self):
        return self._copy_state(ArraySchema(self.element, self.min_items, self.max_items, self.length))


class ObjectSchema(Schema):
    """
    Named fields, each with its own schema. A file picks its field via
    FileMetadata.field; files without one use the first field. A batch
    must carry at least one file for every field not marked optional().
    """

    kind = "object"

    def __init__(self, shape: Dict[str, Schema]) -> None:
        super().__init__()
        if not shape:
            raise ConfigError("object() schema needs at least one field")
        self.shape = dict(shape)

    def _field_for(self, file: FileMetadata) -> Tuple[Optional[str], Optional[Schema]]:
        name = file.field or next(iter(self.shape))
        return name, self.shape.get(name)

    async def validate(self, file: FileMetadata, *, index: Optional[int] = None) -> ValidationResult:
        name, schema = self._field_for(file)
        if schema is None:
            return ValidationResult.fail(
                "INVALID_TYPE",
                f"Unknown field {name!r}. Expected one of: {', '.join(self.shape)}",
                path=(str(name),),
            )
        result = await schema.validate(file, index=index)
        if not result.success:
            return ValidationResult(success=False, error=result.error.prefixed(name))
        return await super().validate(file, index=index)

    def validate_batch(self, files: Sequence[FileMetadata]) -> Optional[ValidationIssue]:
        grouped: Dict[str, List[FileMetadata]] = {k: [] for k in self.shape}
        for f in files:
            name, _ = self._field_for(f)
            if name in grouped:
                grouped[name].append(f)
        for name, schema in self.shape.items():
            group = grouped[name]
            if not group:
                if schema.is_optional:
                    continue
                return ValidationIssue("INVALID_TYPE", f"Field {name!r} is required", (name,))
            issue = schema.validate_batch(group)
            if issue is not None:
                return issue.prefixed(name)
        return None

    def with_defaults(self, max_size: Optional[Size] = None, allowed_types: Optional[Sequence[str]] = None):
        shape = {k: s.with_defaults(max_size, allowed_types) for k, s in self.shape.items()}
        return self._copy_state(ObjectSchema(shape))

    def describe(self) -> Dict[str, Any]:
        return {"type": self.kind, "fields": {k: s.describe() for k, s in self.shape.items()}}

    def _clone(self):
        return self._copy_state(ObjectSchema(self.shape))


# ----------------------------------------------------
# Factories (public API)
# ----------------------------------------------------
def file(
    max_size: Optional[Size] = None,
    min_size: Optional[Size] = None,
    allowed_types: Optional[Sequence[str]] = None,
    allowed_extensions: Optional[Sequence[str]] = None,
) -> FileSchema:
    return FileSchema(FileConstraints.build(max_size, min_size, allowed_types, allowed_extensions))


def image(
    max_size: Optional[Size] = None,
    min_size: Optional[Size] = None,
    allowed_types: Optional[Sequence[str]] = None,
    allowed_extensions: Optional[Sequence[str]] = None,
) -> ImageSchema:
    return ImageSchema(FileConstraints.build(max_size, min_size, allowed_types, allowed_extensions))


def object(shape: Dict[str, Schema]) -> ObjectSchema:  # noqa: A001
    return ObjectSchema(shape)
