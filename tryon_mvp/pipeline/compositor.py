"""Compositor: draw the clothing overlay over the masked photo."""

from PIL import Image

from ..models.placement import PlacementParameters, compute_rect


def compose(
    masked_image: Image.Image,
    clothing_image: Image.Image,
    params: PlacementParameters,
) -> Image.Image:
    """Combine a masked user photo and a clothing image.

    The output is the size of `masked_image`. The clothing image is resized
    into the placement rectangle (proportions kept) and drawn source-over;
    anything outside the canvas is clipped.

    Returns:
        A new RGBA image
    """
    base = masked_image.convert("RGBA")
    canvas_width, canvas_height = base.size

    rect = compute_rect(
        canvas_width,
        canvas_height,
        clothing_image.width / clothing_image.height,
        params,
    )
    x, y, width, height = rect.to_pixels()

    overlay = clothing_image.convert("RGBA").resize((width, height), Image.Resampling.LANCZOS)

    # Paste onto a transparent full-canvas layer so negative or overflowing
    # offsets are clipped, then blend source-over
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    layer.paste(overlay, (x, y))
    return Image.alpha_composite(base, layer)
