"""Read-only awards dataset: ceremonies, categories, nominations and people."""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from awards_api.models.base import Base


class Ceremony(Base):
    """One edition of an award show (e.g. the 96th Academy Awards)."""

    __tablename__ = "ceremonies"

    domain = Column(String, nullable=False, index=True)  # games, film
    organization = Column(String, nullable=False)
    name = Column(String, nullable=False)
    year = Column(Integer, nullable=False, index=True)

    categories = relationship("AwardCategory", back_populates="ceremony")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Ceremony(name={self.name}, year={self.year})>"


class AwardCategory(Base):
    """Category within a ceremony."""

    __tablename__ = "award_categories"

    ceremony_id = Column(Uuid(as_uuid=True), ForeignKey("ceremonies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)

    ceremony = relationship("Ceremony", back_populates="categories")
    nominations = relationship("Nomination", back_populates="category")


class Nomination(Base):
    """Nominee in a category; imdb_id identifies films, honorary rows use an honorary- prefix."""

    __tablename__ = "nominations"

    category_id = Column(Uuid(as_uuid=True), ForeignKey("award_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    imdb_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    is_win = Column(Boolean, nullable=False, default=False)

    category = relationship("AwardCategory", back_populates="nominations")
    people = relationship("NominationPerson", back_populates="nomination")


class Person(Base):
    """Person credited on one or more nominations."""

    __tablename__ = "people"

    name = Column(String, nullable=False, index=True)

    nominations = relationship("NominationPerson", back_populates="person")


class NominationPerson(Base):
    """Credit linking a person to a nomination with a role."""

    __tablename__ = "nomination_people"

    nomination_id = Column(Uuid(as_uuid=True), ForeignKey("nominations.id", ondelete="CASCADE"), nullable=False, index=True)
    person_id = Column(Uuid(as_uuid=True), ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=True)  # director, actor, writer, producer

    nomination = relationship("Nomination", back_populates="people")
    person = relationship("Person", back_populates="nominations")
