from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordCategory(str, Enum):
    """
    RUES registry types, in the order they are searched.

    The value is what the search form's `<select>` expects.
    """

    PRIMARY_REGISTRY = "RM"
    NON_PROFIT_REGISTRY = "ESAL"
    SOLIDARITY_REGISTRY = "ESOL"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    RecordCategory.PRIMARY_REGISTRY: "Registro Mercantil",
    RecordCategory.NON_PROFIT_REGISTRY: "Entidades sin animo de lucro",
    RecordCategory.SOLIDARITY_REGISTRY: "Registro de entidades de economia solidaria",
}


class EconomicActivity(BaseModel):
    ciiu: str
    description: str = ""


class RuesRecord(BaseModel):
    """
    A business record assembled from the result card and the detail tabs.

    Field names match the normalized labels shown on rues.org.co so the summary card
    can be merged in directly.
    """

    model_config = ConfigDict(extra="ignore")

    nombre: str = ""
    tipo_empresa: str = ""
    identificacion: Optional[str] = None
    numero_de_inscripcion: Optional[str] = None
    categoria: Optional[str] = None
    camara_de_comercio: Optional[str] = None
    numero_de_matricula: Optional[str] = None
    estado: Optional[str] = None
    informacion_general: dict[str, str] = Field(default_factory=dict)
    actividad_economica: list[EconomicActivity] = Field(default_factory=list)
    representante_legal: str = ""


class CategorySearchResult(BaseModel):
    category: RecordCategory
    api_responded: bool = True
    record_found: bool = False
    record: Optional[RuesRecord] = None


class RuesPayload(BaseModel):
    identificationNumber: str = ""
    headless: Optional[bool] = None


class RuesResult(BaseModel):
    success: bool
    data: Optional[RuesRecord] = None
    error: Optional[str] = None
    errorCode: Optional[str] = None


class DianTokenEmailPayload(BaseModel):
    identificationType: str = ""
    userCode: str = ""
    companyCode: str = ""
    origin: Optional[str] = None
    headless: Optional[bool] = None


class DianTokenEmailResult(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    origin: Optional[str] = None
    screenshot: Optional[str] = None


class CertificateLoginPayload(BaseModel):
    base64CertificateP12: str = ""
    certificatePassword: str = Field(default="", repr=False)
    identificationType: str = ""
    nitRepresentanteLegal: str = ""
    headless: Optional[bool] = None


class PageInfo(BaseModel):
    title: str = ""
    url: str = ""
    bodyText: str = ""
    formElements: int = 0
    hasTurnstile: bool = False
    hasIdentificationTypeField: bool = False
    hasUserCodeField: bool = False
    hasCompanyCodeField: bool = False


class CertificateLoginResult(BaseModel):
    success: bool
    certificateAccepted: Optional[bool] = None
    formFilled: Optional[bool] = None
    loginStatus: Optional[str] = None
    pageInfo: Optional[PageInfo] = None
    screenshots: dict[str, str] = Field(default_factory=dict)
    cookies: list[dict] = Field(default_factory=list)
    error: Optional[str] = None
