"""Image generation tool."""

from pydantic import BaseModel, ConfigDict, Field

from toolchat.clients.openai_images import ImageSize, ImageStyle
from toolchat.errors import BackendUnavailable, ToolChatError
from toolchat.models.attachments import MessageAttachments
from toolchat.models.tools import ToolOutcome
from toolchat.tools.base import ToolContext, ToolDefinition


class GenerateImageInput(BaseModel):
    """Input schema for the generate_image tool."""

    model_config = ConfigDict(extra="ignore")

    prompt: str = Field(..., min_length=1, description="Detailed description of the image to generate")
    size: ImageSize = Field(default="1024x1024", description="Size of the generated image (default: 1024x1024)")
    style: ImageStyle = Field(default="vivid", description="Style of the generated image (default: vivid)")


def image_failure_reply(error: ToolChatError) -> str:
    return (
        "I'm sorry, I wasn't able to generate the image you requested. "
        f"The error was: {error.message}. Please try again with a different description."
    )


def create_generate_image_tool() -> ToolDefinition:
    async def generate_image_handler(params: GenerateImageInput, context: ToolContext) -> ToolOutcome:
        if context.image_backend is None:
            raise BackendUnavailable("Image generation is not configured")

        # No placeholder image: a failure here ends the exchange with an apology
        image = await context.image_backend.generate(params.prompt, params.size, params.style)
        return ToolOutcome(
            payload=image.model_dump(),
            display_text=(
                "The image has been generated successfully. Please provide a response that incorporates this image."
            ),
            fallback_text="I've generated the image based on your description.",
            attachments=MessageAttachments(generated_images=[image]),
        )

    return ToolDefinition(
        name="generate_image",
        description=(
            "Generate an image based on a text description using DALL-E. "
            "Provide a detailed description of the image you want to create."
        ),
        input_schema_class=GenerateImageInput,
        handler=generate_image_handler,
        action="generate the image",
        failure_reply=image_failure_reply,
    )
