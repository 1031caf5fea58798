class RenderError(Exception):
    """A certificate could not be rendered."""


class TemplateDecodeError(RenderError):
    """The template asset could not be decoded into an image."""
