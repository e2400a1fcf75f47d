import zipfile
from pathlib import Path
from typing import Dict, Optional, Tuple

from pypdf.errors import PyPdfError

from mbc.domain.errors import ErrorType, MbcError, file_error
from mbc.domain.models import BatchSettings, ItemResult, MediaType, Operation, SourceItem
from mbc.infrastructure import documents
from mbc.processors.base import ItemProcessor, ProcessingContext, ProgressCallback, converted_name

# input extension -> output formats it can become
ROUTES: Dict[str, Tuple[str, ...]] = {
    "txt": ("txt", "html"),
    "md": ("txt", "html"),
    "html": ("txt",),
    "htm": ("txt",),
    "docx": ("html", "txt"),
    "pdf": ("txt", "html"),
}


class DocumentConversionProcessor(ItemProcessor):
    """Text, HTML, DOCX and PDF conversions; the route is chosen from the input extension."""

    media_type = MediaType.DOCUMENT
    operation = Operation.CONVERT
    output_formats = ("txt", "html")

    def supports(self, input_ext: str, output_format: str) -> bool:
        return output_format.lower() in ROUTES.get(input_ext.lower(), ())

    def unsupported_message(self, input_ext: str, output_format: str) -> str:
        ext = input_ext.lower()
        out = output_format.lower()
        if ext not in ROUTES:
            return f"Unsupported input format: {ext or '(none)'}. Supported formats: TXT, MD, HTML, DOCX, PDF"
        if out == "pdf":
            return "PDF generation is not supported. Use HTML output instead."
        available = ", ".join(f.upper() for f in ROUTES[ext])
        return f"{ext.upper()} to {out.upper()} conversion is not yet supported. Available: {available}"

    def _read_text(self, item: SourceItem, source: Path) -> str:
        try:
            return source.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise file_error(ErrorType.FILE_ACCESS_DENIED, item.display_name, cause=exc) from exc

    def _render(self, item: SourceItem, source: Path, settings: BatchSettings) -> str:
        ext = item.extension
        out = settings.output_format.lower()
        title = Path(item.display_name).stem

        def as_html(body: str) -> str:
            return documents.wrap_html(body, title=title, font_family=settings.font_family,
                                       font_size=settings.font_size)

        if ext in ("txt", "md"):
            text = self._read_text(item, source)
            return text if out == "txt" else as_html(documents.text_to_html_body(text))
        if ext in ("html", "htm"):
            return documents.html_to_text(self._read_text(item, source))
        if ext == "docx":
            return as_html(documents.docx_to_html(source)) if out == "html" else documents.docx_to_text(source)
        text = documents.pdf_to_text(source)
        return text if out == "txt" else as_html(documents.text_to_html_body(text))

    def _process(self, item: SourceItem, source: Path, settings: BatchSettings,
                 context: ProcessingContext, on_progress: Optional[ProgressCallback]) -> ItemResult:
        try:
            content = self._render(item, source, settings)
        except MbcError:
            raise
        except (ValueError, KeyError, OSError, zipfile.BadZipFile, PyPdfError) as exc:
            raise file_error(ErrorType.FILE_CORRUPTED, item.display_name, cause=exc) from exc

        dest = self.output_path(context, converted_name(source.stem, settings.output_format.lower()))
        dest.write_text(content, encoding="utf-8")
        return self.build_result(dest)
