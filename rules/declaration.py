"""Donor medical self-declaration checklist.

A donor must tick every applicable statement immediately before going
available or accepting a request. A checklist authorizes a single action:
once the engine consumes it, a new one has to be filled in.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class DeclarationItem:
    id: str
    label: str


@dataclass(frozen=True)
class DeclarationSection:
    title: str
    items: Tuple[DeclarationItem, ...]


BASE_SECTIONS: Tuple[DeclarationSection, ...] = (
    DeclarationSection("Basic Eligibility (MANDATORY)", (
        DeclarationItem("age", "I am 18 years or older"),
        DeclarationItem("weight", "My weight is 50 kg or more"),
        DeclarationItem("healthy", "I feel healthy today"),
    )),
    DeclarationSection("Current Health Status", (
        DeclarationItem("no_symptoms", "I do not have fever, cold, cough, or infection"),
        DeclarationItem("hemoglobin", "I do not have low hemoglobin / anemia"),
        DeclarationItem("chronic_disease", "I do not have heart, kidney disease, or cancer"),
        DeclarationItem("epilepsy", "I have not had fits / epilepsy recently"),
    )),
    DeclarationSection("Blood-Borne Diseases", (
        DeclarationItem("hiv", "I have never had HIV / AIDS"),
        DeclarationItem("hepatitis", "I have never had Hepatitis B or C"),
        DeclarationItem("syphilis", "I have never had Syphilis"),
        DeclarationItem("malaria", "I have not had Malaria in the last 3 months"),
    )),
    DeclarationSection("Medical History", (
        DeclarationItem("surgery", "I have not undergone surgery in the last 6 months"),
        DeclarationItem("blood_loss", "I have not had major blood loss or accident recently"),
        DeclarationItem("vaccination", "I have not taken any vaccination in the last 14-28 days"),
        DeclarationItem("tattoo", "I have not done tattoo / piercing in the last 6 months"),
    )),
    DeclarationSection("Lifestyle Safety", (
        DeclarationItem("alcohol", "I have not consumed alcohol in the last 24 hours"),
        DeclarationItem("drugs", "I do not use injectable drugs"),
    )),
)

FEMALE_SECTION = DeclarationSection("For Female Donors", (
    DeclarationItem("pregnant", "I am not pregnant"),
    DeclarationItem("breastfeeding", "I am not breastfeeding"),
    DeclarationItem("menstruation", "I am not having heavy menstruation today"),
))


def _is_female(gender: Optional[str]) -> bool:
    return bool(gender) and gender.lower() == "female"


def sections_for(gender: Optional[str]) -> List[DeclarationSection]:
    """Sections that apply to a donor of the given gender, in display order."""
    sections = list(BASE_SECTIONS)
    female = _is_female(gender)
    if female:
        sections.append(FEMALE_SECTION)

    months = 4 if female else 3
    sections.append(DeclarationSection("Previous Blood Donation", (
        DeclarationItem("prev_donation", f"I have not donated blood in the last {months} months"),
    )))
    return sections


class DeclarationChecklist:
    """Checkbox state for one declaration."""

    def __init__(self, sections: List[DeclarationSection]):
        self.sections = sections
        self._checked: Set[str] = set()
        self._consumed = False

    @classmethod
    def for_gender(cls, gender: Optional[str]) -> "DeclarationChecklist":
        return cls(sections_for(gender))

    @property
    def item_ids(self) -> List[str]:
        return [item.id for section in self.sections for item in section.items]

    @property
    def consumed(self) -> bool:
        return self._consumed

    def _require(self, item_id: str) -> None:
        if item_id not in self.item_ids:
            raise KeyError(f"Unknown declaration item: {item_id}")

    def check(self, item_id: str) -> None:
        self._require(item_id)
        self._checked.add(item_id)

    def uncheck(self, item_id: str) -> None:
        self._require(item_id)
        self._checked.discard(item_id)

    def toggle(self, item_id: str) -> None:
        if item_id in self._checked:
            self.uncheck(item_id)
        else:
            self.check(item_id)

    def is_checked(self, item_id: str) -> bool:
        return item_id in self._checked

    @property
    def all_selected(self) -> bool:
        return all(item_id in self._checked for item_id in self.item_ids)

    def select_all(self) -> None:
        """Check everything, or clear everything if it is all checked already."""
        if self.all_selected:
            self._checked.clear()
        else:
            self._checked = set(self.item_ids)

    def missing(self) -> List[str]:
        """Ids of applicable items still unchecked."""
        return [item_id for item_id in self.item_ids if item_id not in self._checked]

    def is_complete(self) -> bool:
        """True if every applicable item is checked and the checklist is unused."""
        return not self._consumed and not self.missing()

    def consume(self) -> None:
        """Mark the checklist as spent. Raises ValueError if it cannot authorize."""
        if not self.is_complete():
            raise ValueError("Declaration is incomplete or already used")
        self._consumed = True

    def as_dict(self) -> Dict[str, bool]:
        return {item_id: item_id in self._checked for item_id in self.item_ids}
