"""Modelos de identidade: perfil do usuário, identidade do diretório e identidade extraída de header."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator

# Envelope usado pelo serviço de identidades: {"Mail": {"$type": "System.String", "$value": "..."}}
PROPERTY_VALUE_KEY = "$value"


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = ""
    display_name: str = Field(default="", alias="displayName")
    email_address: str = Field(default="", alias="emailAddress")

    def display_value(self) -> str:
        """Nome<email> quando ambos existem; senão o que existir; string vazia se nenhum."""
        if self.display_name and self.email_address:
            return f"{self.display_name}<{self.email_address}>"
        return self.email_address or self.display_name


class Identity(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = ""
    descriptor: str = ""
    subject_descriptor: str = Field(default="", alias="subjectDescriptor")
    provider_display_name: str = Field(default="", alias="providerDisplayName")
    properties: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("descriptor", "subject_descriptor", "provider_display_name", mode="before")
    @classmethod
    def _none_to_empty_str(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("properties", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return {} if v is None else v

    def property_value(self, key: str) -> str:
        """Valor da propriedade como string, desembrulhando {"$value": ...}. "" se ausente."""
        raw = self.properties.get(key)
        if isinstance(raw, dict):
            raw = raw.get(PROPERTY_VALUE_KEY)
        return raw if isinstance(raw, str) else ""

    def preferred_descriptor(self) -> str:
        return self.subject_descriptor or self.descriptor


class HeaderIdentity(BaseModel):
    """Identidade lida do header X-VSS-UserData ("id:uniqueName")."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    unique_name: str = ""
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> "HeaderIdentity":
        head, sep, tail = raw.partition(":")
        if sep:
            return cls(id=head, unique_name=tail, raw=raw)
        return cls(unique_name=raw, raw=raw)

    def reference(self) -> Optional[JsonValue]:
        """Valor de AssignedTo sem enriquecimento pelo diretório."""
        if self.id:
            return {"id": self.id, "uniqueName": self.unique_name}
        return self.unique_name or None
