# exam_prep/services/pdf_service.py
import io
import logging
from typing import Dict, Any
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4, LETTER
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

from ..core.config import config

logger = logging.getLogger(__name__)

PAGE_SIZES = {"A4": A4, "LETTER": LETTER}

class PDFService:
    """Result report rendering"""

    def generate_result_pdf(self, result: Dict[str, Any]) -> bytes:
        """Generate PDF report from a compiled result"""
        pdf_buffer = io.BytesIO()
        doc = SimpleDocTemplate(pdf_buffer, pagesize=PAGE_SIZES.get(config.PDF_PAGE_SIZE.upper(), A4))
        styles = getSampleStyleSheet()
        story = []

        # Title
        story.append(Paragraph(f"Test Result - {escape(result['name'])}", styles['Title']))
        story.append(Spacer(1, 12))

        # Summary
        rank = result.get("rank")
        rank_text = f"{rank} of {result.get('participants', 0)}" if rank else "Not ranked"
        summary_lines = [
            f"Score: {result['score']}%",
            f"Correct: {result['correct_answers']} / {result['total_questions']}",
            f"Incorrect: {result['incorrect_answers']}",
            f"Unanswered: {result['unanswered']}",
            f"Time taken: {result.get('time_taken_minutes') or 0} minutes",
            f"Rank: {rank_text}",
            f"Completed: {result.get('completed_at', '')}",
        ]
        story.append(Paragraph("<br/>".join(summary_lines), styles['Normal']))
        story.append(Spacer(1, 12))

        # Review
        story.append(Paragraph("Question Review", styles['Heading2']))
        for item in result.get("review", []):
            story.append(Paragraph(f"Q{item['number']}. {escape(item['question_text'] or '')}", styles['Heading4']))

            for option in item["options"]:
                marker = ""
                if option["is_correct"]:
                    marker = " (correct)"
                elif option["is_selected"]:
                    marker = " (your answer)"
                story.append(Paragraph(
                    f"{option['label']}) {escape(option['text'] or '')}{marker}", styles['Normal']
                ))

            if item["status"] == "unanswered":
                story.append(Paragraph("Not answered", styles['Italic']))

            if item.get("explanation"):
                story.append(Spacer(1, 4))
                story.append(Paragraph(f"Explanation: {escape(item['explanation'])}", styles['Normal']))
            story.append(Spacer(1, 8))

        doc.build(story)
        logger.info(f"📄 PDF generated for attempt {result['attempt_id']}")
        return pdf_buffer.getvalue()

# Singleton pattern for PDF service
_pdf_service = None

def get_pdf_service() -> PDFService:
    """Get PDF service instance (singleton)"""
    global _pdf_service
    if _pdf_service is None:
        _pdf_service = PDFService()
    return _pdf_service
