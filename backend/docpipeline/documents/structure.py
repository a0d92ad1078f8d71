"""
Document structure: paragraphs grouped into sections, and the
fixed-size batches executors send to a provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Paragraph:
    index: int
    text: str
    is_heading: bool = False
    level: int = 0


@dataclass
class Section:
    """A heading and the paragraphs that follow it up to the next heading."""

    title: str
    level: int
    paragraphs: list[Paragraph] = field(default_factory=list)

    @property
    def body(self) -> list[Paragraph]:
        return [p for p in self.paragraphs if not p.is_heading]


@dataclass
class Batch:
    """One provider call's worth of paragraphs."""

    section: Section
    section_number: int         # 1-based
    total_sections: int
    batch_number: int           # 1-based, within the section
    batches_in_section: int
    paragraphs: list[Paragraph]

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.paragraphs)


@dataclass
class DocumentStructure:
    paragraphs: list[Paragraph] = field(default_factory=list)
    sections: list[Section] = field(default_factory=list)

    @classmethod
    def from_paragraphs(cls, paragraphs: list[Paragraph]) -> "DocumentStructure":
        """Group paragraphs into sections; text before the first heading is an untitled section."""
        sections: list[Section] = []
        current: Section | None = None
        for paragraph in paragraphs:
            if paragraph.is_heading:
                current = Section(title=paragraph.text, level=paragraph.level)
                sections.append(current)
            elif current is None:
                current = Section(title="", level=0)
                sections.append(current)
            current.paragraphs.append(paragraph)
        return cls(paragraphs=paragraphs, sections=sections)

    @property
    def body_paragraphs(self) -> list[Paragraph]:
        return [p for p in self.paragraphs if not p.is_heading]

    def batches(self, size: int, *, include_headings: bool = False) -> list[Batch]:
        """
        Split every section into batches of at most `size` paragraphs.

        Sections with nothing to send are skipped and not counted in
        `total_sections`.
        """
        groups = []
        for section in self.sections:
            items = section.paragraphs if include_headings else section.body
            if items:
                groups.append((section, items))

        batches: list[Batch] = []
        for number, (section, items) in enumerate(groups, start=1):
            chunks = [items[i:i + size] for i in range(0, len(items), size)]
            for batch_number, chunk in enumerate(chunks, start=1):
                batches.append(Batch(
                    section=section,
                    section_number=number,
                    total_sections=len(groups),
                    batch_number=batch_number,
                    batches_in_section=len(chunks),
                    paragraphs=chunk,
                ))
        return batches
