"""Validation schemas for patrimony records.

Three shapes live here:

* ``PatrimonyForm`` is what an operator submits. It applies every rule the
  form enforces (trimmed lengths, "Outro" needs a custom location) and carries
  the messages shown inline next to the form.
* ``PatrimonyCreate`` / ``PatrimonyUpdate`` / ``PatrimonyOut`` are the wire
  rows exchanged with the store.
* ``LegacyPatrimony`` reads the camelCase entries kept in client-local storage
  before records moved to the shared store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NUMBER_MAX = 50
TEXT_MAX = 200
OBSERVATIONS_MAX = 2000

DUPLICATE_NUMBER_MESSAGE = "Este número de patrimônio já existe"
CUSTOM_LOCATION_REQUIRED_MESSAGE = "Por favor, especifique o local"


class PatrimonyStatus(str, Enum):
    FINALIZED = "Finalizada"
    UNDER_MAINTENANCE = "Em manutenção"
    DELIVERED = "Entregue"
    TOTAL_LOSS = "Perda total"


class PatrimonyLocation(str, Enum):
    STORAGE_ROOM = "Quartinho"
    MAINTENANCE_AREA = "Manutenção"
    OTHER = "Outro"


class PatrimonyProblem(str, Enum):
    SLOWNESS = "Lentidão"
    WONT_POWER_ON = "Máquina não liga"
    OTHER_ISSUE = "Outro problema"


# Troubleshooting tips shown under the form when a problem is picked.
PROBLEM_SOLUTIONS: dict[PatrimonyProblem, list[str]] = {
    PatrimonyProblem.SLOWNESS: [
        "Verifique o uso de memória RAM e CPU no gerenciador de tarefas",
        "Limpe arquivos temporários e cache do sistema",
        "Desative programas de inicialização desnecessários",
        "Execute uma verificação de vírus e malware",
        "Considere adicionar mais memória RAM ou atualizar o HD para SSD",
    ],
    PatrimonyProblem.WONT_POWER_ON: [
        "Verifique se o cabo de energia está conectado corretamente",
        "Teste a tomada com outro dispositivo",
        "Pressione e segure o botão de energia por 30 segundos (descarga estática)",
        "Verifique se há LEDs acesos na placa-mãe",
        "Teste com outra fonte de energia se possível",
        "Se for notebook, remova a bateria e tente ligar apenas com o carregador",
    ],
    PatrimonyProblem.OTHER_ISSUE: [
        "Descreva detalhadamente o problema nas observações",
        "Anote mensagens de erro específicas",
        "Verifique se o problema é de hardware ou software",
        "Consulte a documentação do fabricante",
    ],
}


def problem_hints(problem: PatrimonyProblem | str | None) -> list[str]:
    if not problem:
        return []
    try:
        return list(PROBLEM_SOLUTIONS[PatrimonyProblem(problem)])
    except ValueError:
        return []


def _bounded(value: str | None, limit: int, required: str, too_long: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError(required)
    if len(text) > limit:
        raise ValueError(too_long)
    return text


def to_iso(value: datetime | None = None) -> str:
    """Serialise a timestamp the way ``registered_at`` is stored (UTC, ``Z``)."""

    dt = value or datetime.now(tz=timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PatrimonyForm(BaseModel):
    number: str = ""
    model: str = ""
    registered_by: str = ""
    observations: str = ""
    status: PatrimonyStatus = PatrimonyStatus.UNDER_MAINTENANCE
    location: PatrimonyLocation = PatrimonyLocation.STORAGE_ROOM
    custom_location: Optional[str] = None
    problem: Optional[PatrimonyProblem] = None

    @field_validator("number", mode="before")
    @classmethod
    def _number(cls, value):
        return _bounded(
            value,
            NUMBER_MAX,
            "Número do patrimônio é obrigatório",
            "Número deve ter no máximo 50 caracteres",
        )

    @field_validator("model", mode="before")
    @classmethod
    def _model(cls, value):
        return _bounded(value, TEXT_MAX, "Modelo é obrigatório", "Modelo deve ter no máximo 200 caracteres")

    @field_validator("registered_by", mode="before")
    @classmethod
    def _registered_by(cls, value):
        return _bounded(
            value,
            TEXT_MAX,
            "Nome de quem registrou é obrigatório",
            "Nome deve ter no máximo 200 caracteres",
        )

    @field_validator("observations", mode="before")
    @classmethod
    def _observations(cls, value):
        return _bounded(
            value,
            OBSERVATIONS_MAX,
            "Observações são obrigatórias",
            "Observações devem ter no máximo 2000 caracteres",
        )

    @field_validator("problem", mode="before")
    @classmethod
    def _blank_problem(cls, value):
        return value or None

    @model_validator(mode="after")
    def _custom_location(self) -> "PatrimonyForm":
        if self.location is not PatrimonyLocation.OTHER:
            self.custom_location = None
            return self
        custom = (self.custom_location or "").strip()
        if len(custom) > TEXT_MAX:
            raise ValueError("Localização deve ter no máximo 200 caracteres")
        if not custom:
            raise ValueError(CUSTOM_LOCATION_REQUIRED_MESSAGE)
        self.custom_location = custom
        return self

    @property
    def hints(self) -> list[str]:
        return problem_hints(self.problem)

    def to_row(self) -> dict:
        """Columns sent to the store. ``problem`` only drives hints and is not kept."""

        return {
            "number": self.number,
            "model": self.model,
            "registered_by": self.registered_by,
            "observations": self.observations,
            "status": self.status.value,
            "location": self.location.value,
            "custom_location": self.custom_location,
        }


class PatrimonyCreate(BaseModel):
    """A row as accepted by the store.

    ``id`` and ``registered_at`` are normally assigned by the store; the
    legacy upload passes them through so a retried upload overwrites instead
    of duplicating.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(default=None, max_length=64)
    number: str = Field(min_length=1, max_length=NUMBER_MAX)
    model: str = Field(default="", max_length=TEXT_MAX)
    registered_by: str = Field(default="", max_length=TEXT_MAX)
    observations: str = Field(default="", max_length=OBSERVATIONS_MAX)
    status: PatrimonyStatus
    location: PatrimonyLocation
    custom_location: Optional[str] = Field(default=None, max_length=TEXT_MAX)
    registered_at: Optional[datetime] = None
    user_id: Optional[str] = None


class PatrimonyUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    number: Optional[str] = Field(default=None, min_length=1, max_length=NUMBER_MAX)
    model: Optional[str] = Field(default=None, max_length=TEXT_MAX)
    registered_by: Optional[str] = Field(default=None, max_length=TEXT_MAX)
    observations: Optional[str] = Field(default=None, max_length=OBSERVATIONS_MAX)
    status: Optional[PatrimonyStatus] = None
    location: Optional[PatrimonyLocation] = None
    custom_location: Optional[str] = Field(default=None, max_length=TEXT_MAX)


class PatrimonyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    number: str
    model: str
    registered_by: str
    registered_at: datetime
    observations: str
    status: PatrimonyStatus
    location: PatrimonyLocation
    custom_location: Optional[str] = None
    user_id: str

    @property
    def display_location(self) -> str:
        if self.location is PatrimonyLocation.OTHER and self.custom_location:
            return self.custom_location
        return self.location.value


class BulkDeleteResult(BaseModel):
    deleted: int


class LegacyPatrimony(BaseModel):
    """An entry of the pre-migration local collection (camelCase keys, no owner)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    number: str
    model: str = ""
    registered_by: str = Field(default="", alias="registeredBy")
    registered_at: Optional[datetime] = Field(default=None, alias="registeredAt")
    observations: Optional[str] = None
    status: PatrimonyStatus
    location: PatrimonyLocation
    custom_location: Optional[str] = Field(default=None, alias="customLocation")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    def to_row(self, user_id: str) -> dict:
        row = {
            "number": self.number,
            "model": self.model,
            "registered_by": self.registered_by,
            "observations": self.observations or "",
            "status": self.status.value,
            "location": self.location.value,
            "custom_location": self.custom_location or None,
            "user_id": user_id,
        }
        if self.id:
            row["id"] = self.id
        if self.registered_at:
            row["registered_at"] = to_iso(self.registered_at)
        return row
