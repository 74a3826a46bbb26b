"""
Read access to source reports.
"""
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from briefcast.models.report import Report


@dataclass
class SourceReport:
    """The parts of a report a podcast is generated from."""
    id: str
    title: str
    status: str
    content: str
    workflow_type: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status.lower() == 'completed'


def extract_report_content(generated_content: Any) -> str:
    """
    Flatten a report's generated sections into readable text.

    Each section becomes a '## SECTION NAME' block. Sections may be plain
    strings or objects with a 'content' field; anything else is ignored.
    """
    if not generated_content or not isinstance(generated_content, dict):
        return 'No content available'

    sections = []
    for key, section in generated_content.items():
        heading = f'## {key.replace("_", " ").upper()}'
        if isinstance(section, dict) and section.get('content'):
            sections.append(f'{heading}\n{section["content"]}')
        elif isinstance(section, str) and section:
            sections.append(f'{heading}\n{section}')

    return '\n\n'.join(sections) or 'No content available'


class ReportSource:
    """Loads source reports from the reports table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_report(self, report_id: str) -> Optional[SourceReport]:
        async with self._session_factory() as session:
            result = await session.execute(select(Report).where(Report.id == report_id))
            report = result.scalar_one_or_none()

        if report is None:
            return None

        return SourceReport(
            id=report.id,
            title=report.title,
            status=report.status,
            content=extract_report_content(report.generated_content),
            workflow_type=report.workflow_type,
        )
