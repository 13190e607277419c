"""Structured results attached to assistant messages for display."""

from pydantic import BaseModel, ConfigDict, Field

from toolchat.models.calendar import CalendarEvent


class SearchResult(BaseModel):
    """A single web search hit."""

    title: str
    url: str
    snippet: str


class GeneratedImage(BaseModel):
    """An image produced by the image backend."""

    url: str
    prompt: str


class MessageAttachments(BaseModel):
    """Everything the executed tools produced during one exchange."""

    model_config = ConfigDict(populate_by_name=True)

    search_results: list[SearchResult] = Field(default_factory=list, alias="searchResults")
    generated_images: list[GeneratedImage] = Field(default_factory=list, alias="generatedImages")
    calendar_events: list[CalendarEvent] = Field(default_factory=list, alias="calendarEvents")

    def merge(self, other: "MessageAttachments") -> None:
        self.search_results.extend(other.search_results)
        self.generated_images.extend(other.generated_images)
        self.calendar_events.extend(other.calendar_events)

    def is_empty(self) -> bool:
        return not (self.search_results or self.generated_images or self.calendar_events)
