"""
Módulo de Facturación (Invoices)

- Creación de facturas con NCF, numeración FAC-<año>-<nnn> y descuento de stock
- Eliminación con devolución al stock de lo no acreditado
- Pagos (parciales y completos) y recálculo de estado

Tablas principales:
- invoices: Facturas de venta
- invoice_line_items: Ítems de factura
- payments: Pagos de facturas
"""
