# 스토어 문서 공통 설정: 파이썬 쪽은 snake_case, 저장 문서는 camelCase

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StoreDocument(BaseModel):
    """원격 스토어에 JSON 으로 저장되는 문서의 기본 클래스."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_doc(self) -> Dict[str, Any]:
        """스토어 저장용 dict (camelCase 키, datetime 은 ISO 문자열). id 는 문서 키로 따로 관리."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]):
        return cls.model_validate(doc)
