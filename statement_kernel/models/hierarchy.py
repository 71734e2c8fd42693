"""
Facility hierarchy: Province -> District -> Facility.

The hierarchy drives aggregation-level expansion: a PROVINCE statement
covers every accessible facility whose district belongs to the province.
"""

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statement_kernel.db.base import Base


class Province(Base):
    __tablename__ = "provinces"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    districts: Mapped[list["District"]] = relationship(back_populates="province")

    def __repr__(self) -> str:
        return f"<Province {self.id}: {self.name}>"


class District(Base):
    __tablename__ = "districts"

    __table_args__ = (Index("idx_district_province", "province_id"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    province_id: Mapped[int] = mapped_column(ForeignKey("provinces.id"), nullable=False)

    province: Mapped[Province] = relationship(back_populates="districts")
    facilities: Mapped[list["Facility"]] = relationship(back_populates="district")

    def __repr__(self) -> str:
        return f"<District {self.id}: {self.name}>"


class Facility(Base):
    """
    Health facility (hospital, health centre) reporting event data.

    Contract:
        ``facility_type`` is free text from the master data ("hospital",
        "health_center"); the engine only reports it.
    """

    __tablename__ = "facilities"

    __table_args__ = (Index("idx_facility_district", "district_id"),)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    facility_type: Mapped[str] = mapped_column(String(50), nullable=False)
    district_id: Mapped[int | None] = mapped_column(
        ForeignKey("districts.id"), nullable=True
    )

    district: Mapped[District | None] = relationship(back_populates="facilities")

    def __repr__(self) -> str:
        return f"<Facility {self.id}: {self.name}>"
