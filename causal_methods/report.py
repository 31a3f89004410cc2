"""
PDF handout assembly.

A :class:`Report` collects text sections, each optionally followed by a
figure, and renders them with reportlab: a cover page, then for each
section a monospace text page and a page with the PNG scaled to fit.
"""

import os

import matplotlib.pyplot as plt
from PIL import Image


def savefig(fig, path, dpi=150):
    """Write ``fig`` to ``path`` (creating the directory) and close it."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    fig.savefig(path, bbox_inches="tight", dpi=dpi)
    plt.close(fig)
    return path


def _escape(line):
    # reportlab paragraphs are XML
    return line.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class Report:
    """
    Ordered (text, figure) sections of a workshop document.

    The first line of each text block is its section title.
    """

    def __init__(self, title, subtitle="", intro="", outdir="."):
        self.title = title
        self.subtitle = subtitle
        self.intro = intro
        self.outdir = outdir
        self.sections = []

    def add(self, text, fig=None, name=None):
        """
        Append a section. A figure is saved as ``name`` (default
        ``figNN.png``) in ``outdir`` right away.
        """
        fig_path = None
        if fig is not None:
            name = name or f"fig{len(self.sections) + 1:02d}.png"
            fig_path = savefig(fig, os.path.join(self.outdir, name))
        self.sections.append((text, fig_path))
        return fig_path

    def figures(self):
        return [p for _, p in self.sections if p is not None]

    def build_pdf(self, filename):
        """Render all sections to ``outdir/filename`` and return the path."""
        from reportlab.lib.pagesizes import letter
        from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, PageBreak, Image as RLImage
        from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
        from reportlab.lib.units import inch

        pdf_path = os.path.join(self.outdir, filename)
        os.makedirs(self.outdir, exist_ok=True)
        doc = SimpleDocTemplate(pdf_path, pagesize=letter,
                                leftMargin=0.75*inch, rightMargin=0.75*inch,
                                topMargin=0.75*inch, bottomMargin=0.75*inch)

        styles = getSampleStyleSheet()
        code_style = ParagraphStyle(
            'CodeBlock',
            parent=styles['Normal'],
            fontName='Courier',
            fontSize=8.5,
            leading=11,
            spaceAfter=4,
        )
        title_style = ParagraphStyle(
            'SectionTitle',
            parent=styles['Heading1'],
            fontName='Helvetica-Bold',
            fontSize=14,
            leading=18,
            spaceAfter=12,
            textColor='#2171B5',
        )
        heading_style = ParagraphStyle(
            'DocumentTitle',
            parent=styles['Title'],
            fontName='Helvetica-Bold',
            fontSize=18,
            leading=22,
            spaceAfter=6,
        )
        subtitle_style = ParagraphStyle(
            'Subtitle',
            parent=styles['Normal'],
            fontName='Helvetica',
            fontSize=10,
            leading=13,
            spaceAfter=20,
            textColor='#555555',
        )

        story = [Paragraph(_escape(self.title), heading_style)]
        if self.subtitle:
            story.append(Paragraph(_escape(self.subtitle), subtitle_style))
        story.append(Spacer(1, 12))
        for line in self.intro.strip().split('\n'):
            if line.strip() == '':
                story.append(Spacer(1, 6))
            else:
                story.append(Paragraph(_escape(line), styles['Normal']))
        story.append(PageBreak())

        page_w = letter[0] - 1.5*inch
        max_h = letter[1] - 1.5*inch
        for text, fig_path in self.sections:
            lines = text.strip().split('\n')
            story.append(Paragraph(_escape(lines[0]), title_style))
            for line in lines[1:]:
                if line.strip() == '':
                    story.append(Spacer(1, 6))
                else:
                    # keep indentation of tables in the monospace font
                    story.append(Paragraph(_escape(line).replace(' ', '&nbsp;'), code_style))
            story.append(PageBreak())

            if fig_path is None:
                continue
            with Image.open(fig_path) as img:
                iw, ih = img.size
            aspect = ih / iw
            display_w, display_h = page_w, page_w * aspect
            if display_h > max_h:
                display_h = max_h
                display_w = display_h / aspect
            story.append(RLImage(fig_path, width=display_w, height=display_h))
            story.append(PageBreak())

        doc.build(story)
        return pdf_path
