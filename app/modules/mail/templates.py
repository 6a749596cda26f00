"""HTML bodies for transactional email."""
import html
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

PASSWORD_RESET_SUBJECT = "🔐 Сброс пароля - PartsBay.ae"
EMAIL_CHANGE_SUBJECT = "🔄 Изменение email адреса - PartsBay.ae"

_STYLE = """
  body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
  .header { background: linear-gradient(135deg, #f59e0b 0%, #d97706 100%); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
  .content { background: #ffffff; padding: 30px; border: 1px solid #e5e7eb; }
  .footer { background: #f9fafb; padding: 20px; text-align: center; border-radius: 0 0 10px 10px; border: 1px solid #e5e7eb; border-top: none; }
  .button { display: inline-block; background: #f59e0b; color: white; padding: 15px 30px; text-decoration: none; border-radius: 8px; font-weight: bold; margin: 20px 0; }
  .warning { background: #fef3c7; border: 1px solid #f59e0b; padding: 15px; border-radius: 8px; margin: 20px 0; }
  .info-box { background: #f0f9ff; border: 1px solid #0ea5e9; padding: 15px; border-radius: 8px; margin: 20px 0; }
"""

_FOOTER = """
    <div class="footer">
      <p><strong>PartsBay.ae</strong></p>
      <p>Автозапчасти из ОАЭ с доставкой по всему миру</p>
      <p style="font-size: 12px; color: #6b7280;">Если у вас есть вопросы, свяжитесь с нами через сайт или Telegram.</p>
    </div>
"""


def _page(title: str, header: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>{_STYLE}</style>
  </head>
  <body>
    <div class="header">
      <h1>{header}</h1>
      <p>PartsBay.ae - Автозапчасти из ОАЭ</p>
    </div>
    <div class="content">{content}</div>
{_FOOTER}
  </body>
</html>"""


def render_password_reset(reset_link: str, opt_id: Optional[str] = None) -> str:
    link = html.escape(reset_link, quote=True)
    opt_block = f'<div class="info-box"><strong>Ваш OPT ID:</strong> {html.escape(opt_id)}</div>' if opt_id else ""
    content = f"""
      <h2>Здравствуйте!</h2>
      <p>Мы получили запрос на сброс пароля для вашего аккаунта на PartsBay.ae.</p>
      {opt_block}
      <p>Чтобы создать новый пароль, нажмите на кнопку ниже:</p>
      <div style="text-align: center;"><a href="{link}" class="button">Создать новый пароль</a></div>
      <p><strong>Или скопируйте и вставьте эту ссылку в браузер:</strong></p>
      <p style="word-break: break-all; background: #f9fafb; padding: 10px; border-radius: 5px; font-family: monospace;">{link}</p>
      <div class="warning">
        <strong>⚠️ Важно:</strong>
        <ul>
          <li>Ссылка действительна в течение 1 часа</li>
          <li>Если вы не запрашивали сброс пароля, проигнорируйте это письмо</li>
          <li>Никому не передавайте эту ссылку</li>
        </ul>
      </div>
      <p>После создания нового пароля вы сможете войти в систему с новыми учетными данными.</p>
    """
    return _page("Сброс пароля - PartsBay.ae", "🔐 Сброс пароля", content)


def render_email_change(old_email: str, new_email: str, changed_at: Optional[datetime] = None) -> str:
    changed_at = changed_at or datetime.now(ZoneInfo("Asia/Dubai"))
    content = f"""
      <h2>Изменение email адреса</h2>
      <p>Мы уведомляем вас о том, что email адрес вашего аккаунта на PartsBay.ae был изменен.</p>
      <div class="info-box">
        <p><strong>Старый email:</strong> {html.escape(old_email)}</p>
        <p><strong>Новый email:</strong> {html.escape(new_email)}</p>
        <p><strong>Дата изменения:</strong> {changed_at.strftime("%d.%m.%Y, %H:%M:%S")}</p>
      </div>
      <div class="warning">
        <strong>⚠️ Важно:</strong>
        <ul>
          <li>Если вы не производили это изменение, немедленно свяжитесь с нами</li>
          <li>Это письмо отправлено на ваш предыдущий email адрес для безопасности</li>
          <li>Все дальнейшие уведомления будут приходить на новый адрес</li>
        </ul>
      </div>
      <p>Если у вас есть вопросы или подозрения о безопасности аккаунта, обратитесь в нашу службу поддержки.</p>
    """
    return _page("Изменение email - PartsBay.ae", "🔄 Email изменен", content)
