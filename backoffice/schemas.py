from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from backoffice.models import JobStatus, MissingReason, SourceType


class _Body(BaseModel):
    model_config = ConfigDict(extra='forbid', str_strip_whitespace=True)


class LoginRequest(_Body):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)


class JobCreate(_Body):
    title: str = Field(min_length=1, max_length=255)


class JobStatusUpdate(_Body):
    status: JobStatus


class ItemCreate(_Body):
    product_id: int | None = None
    custom_name: str | None = Field(default=None, max_length=255)
    source_id: int | None = None
    source_name: str | None = Field(default=None, max_length=100)
    quantity: int | None = Field(default=None, ge=1)
    unit: str | None = Field(default=None, max_length=50)


class ItemEdit(_Body):
    quantity: int | None = Field(default=None, ge=1)
    source_id: int | None = None
    source_name: str | None = Field(default=None, max_length=100)
    quantity_found: int | None = Field(default=None, ge=0)
    quantity_missing: int | None = Field(default=None, ge=0)
    missing_source: str | None = Field(default=None, max_length=255)
    missing_reason: MissingReason | None = None
    unit: str | None = Field(default=None, max_length=50)

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        if data.get('missing_reason') is not None:
            data['missing_reason'] = data['missing_reason'].value
        return data


class ItemSplit(_Body):
    split_quantity: int | None = None


class ItemDelete(_Body):
    reason: str | None = Field(default=None, max_length=2000)


class SourceCreate(_Body):
    name: str = Field(min_length=1, max_length=100)
    color_code: str = Field(min_length=1, max_length=50)
    type: SourceType


class SourceUpdate(_Body):
    name: str | None = Field(default=None, max_length=100)
    color_code: str | None = Field(default=None, max_length=50)
    type: SourceType | None = None
