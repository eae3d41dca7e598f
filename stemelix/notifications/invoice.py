import io
from datetime import datetime
from typing import Optional

from PIL import Image, ImageDraw, ImageFont
from pydantic import BaseModel

from stemelix.errors import ValidationError

FONT_DIR = "/usr/share/fonts/truetype/dejavu"


class InvoiceData(BaseModel):
    order_id: str
    user_name: str
    user_email: str
    course_title: str
    amount: float
    currency: str = "INR"
    transaction_id: str
    verified_at: datetime
    paid_at: Optional[datetime] = None


def _load_fonts():
    try:
        return {
            "title": ImageFont.truetype(f"{FONT_DIR}/DejaVuSans-Bold.ttf", 64),
            "heading": ImageFont.truetype(f"{FONT_DIR}/DejaVuSans-Bold.ttf", 32),
            "text": ImageFont.truetype(f"{FONT_DIR}/DejaVuSans.ttf", 28),
            "small": ImageFont.truetype(f"{FONT_DIR}/DejaVuSans.ttf", 22),
        }
    except OSError:
        default = ImageFont.load_default()
        return {"title": default, "heading": default, "text": default, "small": default}


class InvoiceRenderer:
    """Draws a one-page A4 invoice (150 dpi) and returns it as PDF bytes"""

    width, height = 1240, 1754
    primary_color = (172, 108, 244)
    secondary_color = (31, 58, 122)
    text_color = (51, 51, 51)
    light_color = (102, 102, 102)

    def render(self, data: InvoiceData) -> bytes:
        if not data.order_id or not data.user_name or not data.course_title:
            raise ValidationError("Missing required invoice data")

        img = Image.new("RGB", (self.width, self.height), color="white")
        draw = ImageDraw.Draw(img)
        fonts = _load_fonts()

        # Header band
        draw.rectangle([0, 0, self.width, 240], fill=self.primary_color)
        draw.text((80, 70), "STEMELIX", fill="white", font=fonts["title"])
        draw.text((80, 160), "Learning Through Innovation", fill="white", font=fonts["small"])

        draw.text((80, 320), "INVOICE", fill=self.primary_color, font=fonts["title"])
        paid_at = data.paid_at or data.verified_at
        meta = [
            ("Invoice No", data.order_id),
            ("Date", data.verified_at.strftime("%B %d, %Y")),
            ("Paid On", paid_at.strftime("%B %d, %Y")),
            ("Transaction", data.transaction_id),
        ]
        y = 320
        for label, value in meta:
            draw.text((700, y), f"{label}: {value}", fill=self.text_color, font=fonts["small"])
            y += 40

        draw.text((80, 540), "Billed To", fill=self.secondary_color, font=fonts["heading"])
        draw.text((80, 600), data.user_name, fill=self.text_color, font=fonts["text"])
        draw.text((80, 645), data.user_email, fill=self.light_color, font=fonts["text"])

        # Line items
        draw.rectangle([80, 760, self.width - 80, 830], fill=self.secondary_color)
        draw.text((110, 778), "Description", fill="white", font=fonts["text"])
        draw.text((self.width - 360, 778), "Amount", fill="white", font=fonts["text"])
        draw.text((110, 870), data.course_title, fill=self.text_color, font=fonts["text"])
        amount = f"{data.currency} {data.amount:,.2f}"
        draw.text((self.width - 360, 870), amount, fill=self.text_color, font=fonts["text"])
        draw.line([(80, 940), (self.width - 80, 940)], fill=self.light_color, width=2)

        draw.text((self.width - 560, 980), "Total Paid", fill=self.secondary_color, font=fonts["heading"])
        draw.text((self.width - 360, 980), amount, fill=self.secondary_color, font=fonts["heading"])

        draw.text((80, self.height - 160), "Thank you for learning with STEMelix.",
                  fill=self.light_color, font=fonts["small"])
        draw.text((80, self.height - 120), "This is a computer generated invoice.",
                  fill=self.light_color, font=fonts["small"])

        buf = io.BytesIO()
        img.save(buf, format="PDF", resolution=150.0)
        return buf.getvalue()
